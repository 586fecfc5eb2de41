from __future__ import annotations

from collections.abc import Iterable

from . import utils
from .models import JobRecord


def group_by_company(records: Iterable[JobRecord]) -> dict[str, list[JobRecord]]:
    """Group records by company, keeping first-appearance order."""
    grouped: dict[str, list[JobRecord]] = {}
    for r in records:
        grouped.setdefault(r.company or "(unknown company)", []).append(r)
    return grouped


def summary_message(records: list[JobRecord], *, label: str = "new openings") -> str:
    """
    A friendly summary line like:
        "3 new openings across 2 companies"
    """
    companies = {r.company for r in records}
    return f"{len(records)} {label} across {len(companies)} companies"


def build_tables(records: list[JobRecord], *, max_companies: int = 20) -> str:
    """
    HTML sections, one per company (first `max_companies` companies):

      <h3>{company}</h3>
      <table>
        Title | Location | Posted | Experience | Link
      </table>

    Records of companies beyond the cap are summarized as "...and N more."
    """
    grouped = group_by_company(records)
    sections: list[str] = []
    shown = 0
    for company, items in list(grouped.items())[:max_companies]:
        row_html: list[str] = []
        for r in items:
            url = r.apply_link or ""
            link_html = f'<a href="{utils.esc(url)}">Link</a>' if url else ""
            row_html.append(
                "<tr>"
                f"<td>{utils.esc(r.title or '(no title)')}</td>"
                f"<td>{utils.esc(r.location)}</td>"
                f"<td>{utils.esc(r.posted_date)}</td>"
                f"<td>{utils.esc(r.experience)}</td>"
                f"<td>{link_html}</td>"
                "</tr>"
            )
            shown += 1
        table_html = (
            "<table border='1' cellspacing='0' cellpadding='6'>"
            "<tr><th>Title</th><th>Location</th><th>Posted</th><th>Experience</th><th>Link</th></tr>"
            + "".join(row_html)
            + "</table>"
        )
        sections.append(f"<h3>{utils.esc(company)}</h3>\n{table_html}")

    remaining = len(records) - shown
    if remaining > 0:
        sections.append(f"<p>...and {remaining} more.</p>")
    return "\n".join(sections)


def wrap_document(content_html: str, *, heading: str | None = None, intro: str | None = None) -> str:
    """Wrap tables in a minimal document structure with optional heading and summary."""
    parts: list[str] = ["<div>"]
    if heading:
        parts.append(f"<h2>{utils.esc(heading)}</h2>")
    if intro:
        parts.append(f"<p>{utils.esc(intro)}</p>")
    parts.append(content_html)
    parts.append("</div>")
    return "\n".join(parts)
