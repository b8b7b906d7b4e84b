"""
Runtime configuration.

Settings are plain pydantic models passed explicitly into the engine and the
extractor. `EngineSettings.from_env()` layers APALINT_* environment variables
over the defaults for the CLI.
"""

import os
from typing import List, Mapping, Optional

from pydantic import BaseModel, Field


class ApaTargets(BaseModel):
    """Formatting values an APA 7 student paper is expected to use."""

    font_family: str = "Times New Roman"
    font_size: float = 12
    line_spacing: float = 2.0
    line_spacing_tolerance: float = 0.1
    margin_inches: float = 1.0
    margin_tolerance: float = 0.1
    first_line_indent: float = 0.5
    indent_tolerance: float = 0.05
    block_quote_words: int = Field(40, description="Quotes at or above this word count must be block quotes.")
    long_quote_words: int = Field(30, description="Inline quotes at or above this word count get an advisory.")


class SeverityWeights(BaseModel):
    """Penalty per issue used by the compliance score."""

    critical: float = 8
    major: float = 4
    minor: float = 1.5


class EngineSettings(BaseModel):
    cache_capacity: int = Field(100, ge=0)
    targets: ApaTargets = Field(default_factory=ApaTargets)
    weights: SeverityWeights = Field(default_factory=SeverityWeights)
    disabled_rules: List[str] = Field(default_factory=list)
    extraction_batch_size: int = Field(200, ge=1)
    strict_extraction: bool = False

    @classmethod
    def from_env(cls, environ: Optional[Mapping[str, str]] = None) -> "EngineSettings":
        env = os.environ if environ is None else environ
        values = {}

        if env.get("APALINT_CACHE_CAPACITY"):
            values["cache_capacity"] = int(env["APALINT_CACHE_CAPACITY"])
        if env.get("APALINT_BATCH_SIZE"):
            values["extraction_batch_size"] = int(env["APALINT_BATCH_SIZE"])
        if env.get("APALINT_DISABLED_RULES"):
            values["disabled_rules"] = [r.strip() for r in env["APALINT_DISABLED_RULES"].split(",") if r.strip()]
        if env.get("APALINT_STRICT"):
            values["strict_extraction"] = env["APALINT_STRICT"].strip().lower() in ("1", "true", "yes", "on")

        return cls(**values)
