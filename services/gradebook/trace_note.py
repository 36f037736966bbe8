import json
from pathlib import Path
from typing import Any, Dict, Optional

from jinja2 import Environment, FileSystemLoader, StrictUndefined

TEMPLATE_DIR = Path(__file__).resolve().parents[2] / "templates"


class TraceNoteRenderer:
    def __init__(self, template_dir: Path = TEMPLATE_DIR):
        # plain-text note, no HTML escaping
        self.env = Environment(
            loader=FileSystemLoader(template_dir),
            autoescape=False,
            undefined=StrictUndefined,
            keep_trailing_newline=True,
        )

    def _render_template(self, template_name: str, data: Dict[str, Any]) -> str:
        template = self.env.get_template(template_name)
        return template.render(**data)

    def render_phase4_note(
        self,
        metadata: Dict[str, Any],
        breakdown: Optional[Dict[str, Any]],
        student_name: str,
        initial_grade: Optional[float],
        final_numeric_grade: float,
        transmuted_grade: Optional[float],
    ) -> str:
        """Trace note stored as a Phase 4 grade entry; breakdown embedded verbatim."""
        return self._render_template("phase4_trace_note.txt.j2", {
            "student_name": student_name,
            "initial_grade": initial_grade,
            "final_numeric_grade": final_numeric_grade,
            "transmuted_grade": transmuted_grade,
            "metadata_json": json.dumps(metadata, indent=2, ensure_ascii=False, default=str),
            "breakdown_json": json.dumps(breakdown, indent=2, ensure_ascii=False, default=str),
        })


trace_notes = TraceNoteRenderer()
