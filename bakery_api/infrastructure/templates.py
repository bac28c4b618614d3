"""Jinja2 environment for the HTML email templates."""

from pathlib import Path

from jinja2 import Environment, FileSystemLoader, select_autoescape

from bakery_api.domain.value_objects import format_usd

TEMPLATES_DIR = Path(__file__).resolve().parent.parent / "templates"

env = Environment(
    loader=FileSystemLoader(TEMPLATES_DIR),
    autoescape=select_autoescape(["html"]),
)
env.filters["usd"] = format_usd


def render_template(template_path: str, **context) -> str:
    template = env.get_template(template_path)
    return template.render(**context)
