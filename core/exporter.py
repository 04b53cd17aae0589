import json
import logging
from core.errors import ExportError
from core.models import JourneyAggregate, RunReport
from pathlib import Path

logger = logging.getLogger(__name__)


class JourneyExporter:
    """Write the journey document and the run report as JSON"""

    def __init__(self, output_dir: Path):
        self.output_dir = output_dir

    def _write_json(self, path: Path, data: dict):
        try:
            self.output_dir.mkdir(parents=True, exist_ok=True)
            tmp_path = path.with_name(f".{path.name}.tmp")
            with open(tmp_path, 'w', encoding='utf-8') as f:
                json.dump(data, f, indent=2, ensure_ascii=False)
            # Replace in one step so readers never see a half-written document
            tmp_path.replace(path)
        except (OSError, TypeError, ValueError) as e:
            raise ExportError(f"Cannot write {path}: {e}") from e

    def export(self, journey: JourneyAggregate, file_name: str) -> Path:
        output_file = self.output_dir / file_name
        self._write_json(output_file, journey.to_document())
        logger.info(f"Output written to {output_file}")
        return output_file

    def export_report(self, report: RunReport, file_name: str) -> Path:
        report_file = self.output_dir / file_name
        self._write_json(report_file, report.to_dict())
        logger.info(f"Run report written to {report_file}")
        return report_file
