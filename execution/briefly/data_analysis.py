"""
Data analysis context for CSV uploads.

The model sees the filename, row count, column headers and the first five
rows; charts and forecasts come back as tool calls in the stream.
"""

import csv
import io
from dataclasses import dataclass, field

from .prompts import DATA_ANALYSIS_TOOLS, data_analysis_system_prompt

SAMPLE_ROWS = 5


@dataclass
class DataContext:
    """Summary of a tabular dataset sent along with data questions."""
    filename: str
    row_count: int
    headers: list[str]
    sample_data: list[dict] = field(default_factory=list)

    @classmethod
    def from_csv_text(cls, filename: str, text: str) -> "DataContext":
        """Build a context from raw CSV text (first row is the header)."""
        reader = csv.DictReader(io.StringIO(text.lstrip("﻿")))
        headers = [h.strip() for h in (reader.fieldnames or [])]
        rows = [
            {k.strip(): (v.strip() if isinstance(v, str) else v) for k, v in row.items() if k is not None}
            for row in reader
            if any((v or "").strip() for v in row.values() if isinstance(v, str))
        ]
        return cls(
            filename=filename,
            row_count=len(rows),
            headers=headers,
            sample_data=rows[:SAMPLE_ROWS],
        )

    def system_prompt(self) -> str:
        return data_analysis_system_prompt(
            self.filename, self.row_count, self.headers, self.sample_data[:SAMPLE_ROWS]
        )


def build_analysis_messages(context: DataContext, messages: list[dict]) -> list[dict]:
    return [{"role": "system", "content": context.system_prompt()}, *messages]


def analysis_tools() -> list[dict]:
    return list(DATA_ANALYSIS_TOOLS)
