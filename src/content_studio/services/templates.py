"""
Template Catalogue - loads templates.yaml, validates forms and composes prompts
"""
import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Optional

import yaml
from sqlalchemy.orm import Session

from ..db.models import Template as TemplateRow
from ..exceptions import TemplateNotFoundError

logger = logging.getLogger(__name__)

TEMPLATES_PATH = Path(__file__).parent.parent / "config" / "templates.yaml"

CATEGORIES = ("blog", "social", "ads", "email", "website", "tool", "image")

_catalogue: Optional[Dict[str, "TemplateSpec"]] = None


@dataclass
class TemplateField:
    name: str
    label: str
    required: bool = False
    default: Optional[str] = None
    choices: Optional[List[str]] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "name": self.name,
            "label": self.label,
            "required": self.required,
            "default": self.default,
            "choices": self.choices,
        }


@dataclass
class TemplateSpec:
    slug: str
    title: str
    category: str
    description: str
    prompt: str
    fields: List[TemplateField] = field(default_factory=list)
    fragments: Dict[str, Dict[str, str]] = field(default_factory=dict)
    document_title: Optional[str] = None
    credit_action: Optional[str] = None

    def to_dict(self, include_fields: bool = True) -> Dict[str, Any]:
        data = {
            "slug": self.slug,
            "title": self.title,
            "category": self.category,
            "description": self.description,
        }
        if include_fields:
            data["fields"] = [f.to_dict() for f in self.fields]
        return data


def _parse_template(slug: str, raw: Dict[str, Any]) -> TemplateSpec:
    category = raw.get("category", "tool")
    if category not in CATEGORIES:
        raise ValueError(f"Template {slug} has unknown category: {category}")

    fields = [
        TemplateField(
            name=f["name"],
            label=f.get("label", f["name"]),
            required=bool(f.get("required", False)),
            default=f.get("default"),
            choices=f.get("choices"),
        )
        for f in raw.get("fields", [])
    ]
    return TemplateSpec(
        slug=slug,
        title=raw["title"],
        category=category,
        description=raw.get("description", ""),
        prompt=raw["prompt"],
        fields=fields,
        fragments=raw.get("fragments") or {},
        document_title=raw.get("document_title"),
        credit_action=raw.get("credit_action"),
    )


def load_catalogue(path: Optional[Path] = None) -> Dict[str, TemplateSpec]:
    """Load and cache the template catalogue from YAML"""
    global _catalogue
    if _catalogue is None or path is not None:
        with open(path or TEMPLATES_PATH, "r") as f:
            raw = yaml.safe_load(f) or {}
        catalogue = {
            slug: _parse_template(slug, spec)
            for slug, spec in (raw.get("templates") or {}).items()
        }
        logger.info(f"Loaded {len(catalogue)} templates")
        if path is not None:
            return catalogue
        _catalogue = catalogue
    return _catalogue


def list_templates(category: Optional[str] = None) -> List[TemplateSpec]:
    templates = list(load_catalogue().values())
    if category:
        templates = [t for t in templates if t.category == category]
    return templates


def get_template(slug: str) -> TemplateSpec:
    template = load_catalogue().get(slug)
    if template is None:
        raise TemplateNotFoundError(slug)
    return template


def _as_text(value: Any) -> str:
    if value is None:
        return ""
    if isinstance(value, (list, tuple)):
        return ", ".join(str(v) for v in value if v is not None)
    return str(value).strip()


def validate_form(template: TemplateSpec, form_data: Dict[str, Any]) -> List[str]:
    """
    Check a submitted form against a template.

    Fills defaults into ``form_data`` in place and returns the names of
    required fields that are still empty.

    Raises:
        ValueError: A value is not one of the field's choices
    """
    missing = []
    for f in template.fields:
        value = _as_text(form_data.get(f.name))
        if not value and f.default is not None:
            value = f.default
            form_data[f.name] = value
        if not value:
            if f.required:
                missing.append(f.name)
            continue
        if f.choices and value not in f.choices:
            raise ValueError(
                f"Invalid value for {f.name}: {value}. Must be one of: {', '.join(f.choices)}"
            )
    return missing


def _render_fragment(fragment: Dict[str, str], values: Dict[str, str]) -> str:
    value = values.get(fragment["field"], "")
    expected = fragment.get("equals")
    active = value == expected if expected is not None else bool(value)
    if active:
        return fragment["text"].format(**values)
    return fragment.get("otherwise", "")


def build_prompt(template: TemplateSpec, form_data: Dict[str, Any]) -> str:
    """Compose the prompt for a template; lines left blank by empty fragments are dropped"""
    values = {f.name: _as_text(form_data.get(f.name)) or (f.default or "") for f in template.fields}
    context = dict(values)
    for name, fragment in template.fragments.items():
        context[name] = _render_fragment(fragment, values)

    rendered = template.prompt.format(**context)
    lines = [line.rstrip() for line in rendered.splitlines()]
    return "\n".join(line for line in lines if line.strip()).strip()


def document_title_for(template: TemplateSpec, form_data: Dict[str, Any]) -> str:
    """Suggested title for a document generated from this template"""
    if not template.document_title:
        return template.title
    values = {f.name: _as_text(form_data.get(f.name)) for f in template.fields}
    return template.document_title.format(**values).strip() or template.title


def credit_action_for(template: Optional[TemplateSpec]) -> str:
    """Credit action consumed by generating with this template"""
    if template is None or not template.credit_action:
        return "text_generation"
    return template.credit_action


def seed_templates(db: Session) -> int:
    """Insert catalogue templates missing from the templates table; returns rows added"""
    existing = {slug for (slug,) in db.query(TemplateRow.slug).all()}
    added = 0
    for spec in load_catalogue().values():
        if spec.slug in existing:
            continue
        db.add(TemplateRow(
            slug=spec.slug,
            title=spec.title,
            category=spec.category,
            description=spec.description,
        ))
        added += 1
    if added:
        db.commit()
        logger.info(f"Seeded {added} templates")
    return added


def get_by_title(db: Session, title: str) -> Optional[TemplateRow]:
    return db.query(TemplateRow).filter(TemplateRow.title == title).first()


def resolve_template_id(db: Session, template_ref: Any) -> Optional[int]:
    """Map a template id or slug to a templates row id, or None"""
    if template_ref is None or template_ref == "":
        return None
    query = db.query(TemplateRow)
    if isinstance(template_ref, int) or str(template_ref).isdigit():
        row = query.filter(TemplateRow.id == int(template_ref)).first()
    else:
        row = query.filter(TemplateRow.slug == str(template_ref)).first()
    return row.id if row else None
