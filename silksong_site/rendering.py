"""
Shared Jinja2 environment for pages, feeds and emails.
"""
from datetime import datetime, timezone
from email.utils import format_datetime
from pathlib import Path

from jinja2 import Environment, FileSystemLoader, StrictUndefined, select_autoescape

TEMPLATES_DIR = Path(__file__).parent / "templates"


def _rfc822(value: datetime) -> str:
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    # usegmt only accepts the stdlib UTC tzinfo
    return format_datetime(value.astimezone(timezone.utc), usegmt=True)


def create_environment() -> Environment:
    env = Environment(
        loader=FileSystemLoader(str(TEMPLATES_DIR)),
        autoescape=select_autoescape(["html", "xml"]),
        undefined=StrictUndefined,  # Fail on undefined variables
        trim_blocks=True,
        lstrip_blocks=True,
    )
    env.filters["rfc822"] = _rfc822
    return env


env = create_environment()


def render(template_name: str, **context) -> str:
    return env.get_template(template_name).render(**context)
