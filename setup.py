"""
Setup script for package installation
"""
from setuptools import setup, find_packages

setup(
    name="content_studio",
    version="0.1.0",
    package_dir={"": "src"},
    packages=find_packages(where="src"),
    package_data={"content_studio": ["config/*.yaml"]},
    include_package_data=True,
    python_requires=">=3.10,<3.14",
    install_requires=[
        "fastapi>=0.110",
        "starlette",
        "uvicorn[standard]",
        "pydantic[email]>=2",
        "sqlalchemy>=2.0",
        "psycopg2-binary",
        "alembic",
        "python-jose[cryptography]",
        "bcrypt",
        "python-multipart",
        "python-dotenv",
        "pyyaml",
        "httpx",
        "litellm",
        "stripe>=7.0",
    ],
    extras_require={
        "test": [
            "pytest",
            "httpx",
        ],
    },
)
