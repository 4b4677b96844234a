"""
Tests for the template catalogue
"""
import pytest

from content_studio.exceptions import TemplateNotFoundError
from content_studio.services.templates import (
    CATEGORIES,
    build_prompt,
    credit_action_for,
    document_title_for,
    get_template,
    list_templates,
    load_catalogue,
    resolve_template_id,
    validate_form,
)
from content_studio.db.models import Template


class TestCatalogue:
    """Test catalogue loading"""

    def test_catalogue_has_templates_and_tools(self):
        catalogue = load_catalogue()
        assert "seo-blog-post" in catalogue
        assert "translation" in catalogue
        assert all(t.category in CATEGORIES for t in catalogue.values())

    def test_list_templates_by_category(self):
        tools = list_templates("tool")
        slugs = {t.slug for t in tools}
        assert {"grammar-checker", "translation", "content-improver"} <= slugs
        assert all(t.category == "tool" for t in tools)

    def test_unknown_template(self):
        with pytest.raises(TemplateNotFoundError):
            get_template("no-such-template")

    def test_custom_catalogue_file(self, tmp_path):
        path = tmp_path / "templates.yaml"
        path.write_text(
            "templates:\n"
            "  haiku:\n"
            "    title: Haiku\n"
            "    category: blog\n"
            "    prompt: 'Write a haiku about {topic}'\n"
            "    fields:\n"
            "      - {name: topic, required: true}\n"
        )
        catalogue = load_catalogue(path)
        assert list(catalogue) == ["haiku"]
        # The cached default catalogue is untouched
        assert "seo-blog-post" in load_catalogue()

    def test_unknown_category_rejected(self, tmp_path):
        path = tmp_path / "templates.yaml"
        path.write_text(
            "templates:\n"
            "  odd:\n"
            "    title: Odd\n"
            "    category: poetry\n"
            "    prompt: 'x'\n"
        )
        with pytest.raises(ValueError):
            load_catalogue(path)


class TestValidateForm:
    """Test form validation against template fields"""

    def test_missing_required_fields(self):
        template = get_template("seo-blog-post")
        missing = validate_form(template, {"keyword": "python"})
        assert missing == ["topic", "audience"]

    def test_default_is_filled_in(self):
        template = get_template("seo-blog-post")
        form = {"keyword": "python", "topic": "Testing", "audience": "developers"}
        assert validate_form(template, form) == []
        assert form["wordCount"] == "1000 words"

    def test_whitespace_counts_as_missing(self):
        template = get_template("how-to-guide")
        form = {"topic": "   ", "audience": "beginners", "difficulty": "Beginner", "steps": "one"}
        assert validate_form(template, form) == ["topic"]

    def test_invalid_choice(self):
        template = get_template("how-to-guide")
        form = {"topic": "Tea", "audience": "everyone", "difficulty": "Expert", "steps": "boil"}
        with pytest.raises(ValueError) as exc_info:
            validate_form(template, form)
        assert "difficulty" in str(exc_info.value)


class TestBuildPrompt:
    """Test prompt composition"""

    def test_optional_fragments_omitted(self):
        template = get_template("seo-blog-post")
        prompt = build_prompt(template, {
            "keyword": "pytest",
            "topic": "Testing in Python",
            "audience": "developers",
        })
        assert '"Testing in Python"' in prompt
        assert '"pytest".' in prompt
        assert "secondary keywords" not in prompt
        assert "outline" not in prompt.lower()
        assert "1000 words" in prompt
        # Blank lines from empty fragments are dropped
        assert "\n\n" not in prompt

    def test_optional_fragments_included(self):
        template = get_template("seo-blog-post")
        prompt = build_prompt(template, {
            "keyword": "pytest",
            "secondaryKeywords": "fixtures, mocks",
            "topic": "Testing",
            "audience": "developers",
            "outline": "Intro, Body, End",
        })
        assert "secondary keywords include fixtures, mocks" in prompt
        assert "Follow this outline: Intro, Body, End" in prompt

    def test_list_values_are_joined(self):
        template = get_template("translation")
        prompt = build_prompt(template, {"text": ["Hello", "world"], "targetLanguage": "French"})
        assert "Hello, world" in prompt
        assert "into French" in prompt
        assert " from " not in prompt.split("into")[0]


class TestTitlesAndCredits:
    """Test document titles and credit actions"""

    def test_document_title(self):
        template = get_template("seo-blog-post")
        assert document_title_for(template, {"topic": "Caching"}) == "SEO Blog: Caching"

    def test_credit_action_defaults_to_text_generation(self):
        assert credit_action_for(get_template("seo-blog-post")) == "text_generation"
        assert credit_action_for(None) == "text_generation"

    def test_tool_credit_actions(self):
        assert credit_action_for(get_template("translation")) == "translation"
        assert credit_action_for(get_template("grammar-checker")) == "grammar_check"


class TestTemplateRows:
    """Test the seeded templates table"""

    def test_seeded_rows(self, db_session):
        count = db_session.query(Template).count()
        assert count == len(load_catalogue())

    def test_resolve_template_id(self, db_session):
        row = db_session.query(Template).filter(Template.slug == "linkedin-post").first()
        assert resolve_template_id(db_session, "linkedin-post") == row.id
        assert resolve_template_id(db_session, str(row.id)) == row.id
        assert resolve_template_id(db_session, row.id) == row.id
        assert resolve_template_id(db_session, "missing") is None
        assert resolve_template_id(db_session, None) is None
