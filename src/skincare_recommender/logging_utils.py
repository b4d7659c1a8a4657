"""
logging_utils.py

Central logging utilities for the skincare recommender.

Log format (one line):
<RunId>|<Date>|<Time>|<Level>|<File:Line>|<Module.Func>|<ModulePurpose>|
<InvokingFunc>|<InvokingFuncPurpose>|<Detail>|<NextStep>|<Resolution>|<END>
"""

from __future__ import annotations

import datetime
import logging
import uuid
from typing import Dict

RUN_ID: str = uuid.uuid4().hex[:8]


class StructuredFormatter(logging.Formatter):
    """One pipe-delimited line per record; missing extras become empty fields."""

    # keyed by record.module
    MODULE_PURPOSES: Dict[str, str] = {
        "config": "Build settings and the Supabase client from environment variables",
        "sparql_client": "Run SPARQL SELECT queries against the skincare knowledge graph",
        "ontology_service": "Parametrized ontology queries that never raise",
        "ingredient_matcher": "Fuzzy-match catalog ingredient text to ontology names",
        "repository": "Read-only product catalog queries on Supabase",
        "retriever": "Pull safety-filtered candidates with ontology ingredient matches",
        "scoring": "Weighted hybrid scoring of product candidates",
        "safety": "Ontology conflict / synergy analysis per candidate",
        "explanations": "Deterministic recommendation rationale",
        "fallback": "Fallback chain state machine for recommendation tiers",
        "recommender": "Entry point wiring ontology + catalog into recommendations",
    }

    EXTRA_FIELDS = ("invoking_func", "invoking_purpose")
    TRAILING_FIELDS = ("next_step", "resolution")

    def format(self, record: logging.LogRecord) -> str:  # type: ignore[override]
        created = datetime.datetime.fromtimestamp(record.created)
        detail = record.getMessage()
        if record.exc_info:
            detail = f"{detail} | EXC={record.exc_info[1]!r}"

        parts = [
            getattr(record, "run_id", RUN_ID),
            created.strftime("%Y-%m-%d"),
            created.strftime("%H:%M:%S"),
            record.levelname,
            f"{record.filename}:{record.lineno}",
            f"{record.module}.{record.funcName}",
            self.MODULE_PURPOSES.get(record.module, ""),
        ]
        parts += [str(getattr(record, f, "") or "") for f in self.EXTRA_FIELDS]
        parts.append(detail)
        parts += [str(getattr(record, f, "") or "") for f in self.TRAILING_FIELDS]
        parts.append("<END>")
        return "|".join(parts)


def init_logging(level: int = logging.INFO) -> None:
    """Attach a StructuredFormatter stream handler unless the root logger has one."""
    root = logging.getLogger()
    if root.handlers:
        return

    handler = logging.StreamHandler()
    handler.setFormatter(StructuredFormatter())
    root.addHandler(handler)
    root.setLevel(level)


def get_logger(name: str) -> logging.Logger:
    """
    Named logger for one component; see MODULE_PURPOSES.

    Callers fill the template through `extra`:
        invoking_func, invoking_purpose, next_step, resolution
    """
    init_logging()
    return logging.getLogger(name)
