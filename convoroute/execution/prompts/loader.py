"""
Jinja2 template loader for prompts.

Loads .jinja2 templates shipped next to this module and renders them with
the variables the response stage and router provide.
"""

from functools import lru_cache
from pathlib import Path

from jinja2 import Environment, FileSystemLoader, select_autoescape

from .templates import Template

TEMPLATES_DIR = Path(__file__).parent / "templates"


def _template_names():
    return [getattr(Template, name) for name in dir(Template) if not name.startswith("_")]


def _validate_templates():
    """Every Template constant must have a file. Fails fast at import."""
    missing = [
        name for name in _template_names()
        if not (TEMPLATES_DIR / f"{name}.jinja2").exists()
    ]
    if missing:
        raise FileNotFoundError(f"Templates missing in {TEMPLATES_DIR}: {missing}")


_validate_templates()


@lru_cache(maxsize=1)
def _get_environment() -> Environment:
    return Environment(
        loader=FileSystemLoader(TEMPLATES_DIR),
        autoescape=select_autoescape(default=False),
        trim_blocks=True,
        lstrip_blocks=True,
        keep_trailing_newline=False,
    )


def render(template_name: str, **context) -> str:
    """
    Render a prompt template.

    Args:
        template_name: One of the Template constants.
        **context: Variables to pass to the template.
    """
    template = _get_environment().get_template(f"{template_name}.jinja2")
    return template.render(**context).strip()
