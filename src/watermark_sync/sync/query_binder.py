"""Binds the resolved watermark into the parameterized source statement."""

import re
from pathlib import Path
from typing import Any

import structlog
from pydantic import BaseModel, ConfigDict
from sqlalchemy import TextClause, text

from watermark_sync.errors import ConfigurationError
from watermark_sync.models.config import QueryConfig
from watermark_sync.models.watermark import Abort, Fresh, ResolvedWatermark

log = structlog.stdlib.get_logger()

# Reserved named parameter receiving the resolved watermark
WATERMARK_PARAMETER = "max_id"

# Same rule SQLAlchemy's text() uses to find ":name" bind parameters
_BIND_PARAM_PATTERN = re.compile(r"(?<![:\w\x5c]):(\w+)(?!:)")


def _foreign_placeholder_pattern(name: str) -> re.Pattern[str]:
    escaped = re.escape(name)
    return re.compile(
        rf"(\{{\s*{escaped}\s*\}}|%\(\s*{escaped}\s*\)s|[$@?]\{{?{escaped}\b)"
    )


class BoundStatement(BaseModel):
    """An executable statement with its bound parameters."""

    model_config = ConfigDict(frozen=True, arbitrary_types_allowed=True)

    clause: TextClause
    params: dict[str, Any]

    @property
    def watermark(self) -> Any:
        return self.params.get(WATERMARK_PARAMETER)


class QueryBinder:
    """Merges the watermark and configured parameters into the source statement.

    The statement is validated once, at construction. Values are always passed
    through SQLAlchemy bind parameters; the statement text is never rewritten.
    """

    def __init__(
        self,
        statement: str | None = None,
        statement_filepath: str | None = None,
        parameters: dict[str, Any] | None = None,
        fresh_value: int = 0,
    ):
        """
        Initialize the binder.

        Args:
            statement: Inline SQL statement
            statement_filepath: File holding the SQL statement
            parameters: Additional named parameters
            fresh_value: Watermark bound when the destination holds no data yet

        Raises:
            ConfigurationError: If the statement configuration is invalid
        """
        if (statement is None) == (statement_filepath is None):
            raise ConfigurationError(
                "Must set either statement or statement_filepath. Only one may be set at a time."
            )

        self._statement = statement if statement is not None else self._read_statement(
            statement_filepath
        )
        if not self._statement.strip():
            raise ConfigurationError("Statement is empty")

        self._parameters: dict[str, Any] = dict(parameters or {})
        self._fresh_value = fresh_value

        if WATERMARK_PARAMETER in self._parameters:
            raise ConfigurationError(
                f"Parameter name {WATERMARK_PARAMETER!r} is reserved for the watermark"
            )

        if _foreign_placeholder_pattern(WATERMARK_PARAMETER).search(self._statement):
            raise ConfigurationError(
                f"Statement must reference the watermark as :{WATERMARK_PARAMETER}; "
                f"other placeholder styles are not supported"
            )

        self._referenced = set(_BIND_PARAM_PATTERN.findall(self._statement))
        missing = self._referenced - set(self._parameters) - {WATERMARK_PARAMETER}
        if missing:
            raise ConfigurationError(
                f"Statement references parameters with no configured value: {sorted(missing)}"
            )

        self._clause = text(self._statement)

        if WATERMARK_PARAMETER not in self._referenced:
            log.warning(
                "statement_ignores_watermark",
                parameter=WATERMARK_PARAMETER,
                hint="every cycle will re-read the full result set",
            )

        log.info(
            "query_binder_initialized",
            source="file" if statement_filepath else "inline",
            parameters=sorted(self._referenced),
            uses_watermark=WATERMARK_PARAMETER in self._referenced,
        )

    @classmethod
    def from_config(cls, config: QueryConfig) -> "QueryBinder":
        return cls(
            statement=config.statement,
            statement_filepath=config.statement_filepath,
            parameters=config.parameters,
            fresh_value=config.fresh_value,
        )

    @property
    def statement(self) -> str:
        return self._statement

    def bind(self, watermark: ResolvedWatermark) -> BoundStatement:
        """
        Bind a resolved watermark into the statement.

        Args:
            watermark: Fresh or WatermarkValue

        Returns:
            BoundStatement ready for execution

        Raises:
            ValueError: If called with an Abort
        """
        if isinstance(watermark, Abort):
            raise ValueError("Cannot bind an aborted watermark resolution")

        value = self._fresh_value if isinstance(watermark, Fresh) else watermark.value

        merged = {**self._parameters, WATERMARK_PARAMETER: value}
        params = {name: merged[name] for name in self._referenced}

        log.debug("statement_bound", watermark=value, parameters=sorted(params))
        return BoundStatement(clause=self._clause, params=params)

    @staticmethod
    def _read_statement(path: str | None) -> str:
        try:
            return Path(path).read_text()
        except OSError as e:
            raise ConfigurationError(f"Failed to read statement file {path}: {e}") from e
