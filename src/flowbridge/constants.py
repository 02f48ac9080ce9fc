"""Shared defaults for flowbridge.

Values here are the defaults of ``flowbridge.config.ExpressionConfig`` and are
also used directly by the pure-function API when no settings are supplied.
"""

from __future__ import annotations

from typing import Final

# Evaluation budget per call
DEFAULT_EVAL_TIMEOUT_SECONDS: Final[float] = 0.25
DEFAULT_EVAL_MAX_STEPS: Final[int] = 100_000

# Total characters (or items) builtins may produce during one evaluation
DEFAULT_MAX_BUILT_SIZE: Final[int] = 10_000_000

# Longest expression body the evaluator will parse
MAX_EXPRESSION_LENGTH: Final[int] = 10_000

# Parameter trees nested deeper than this are passed through untouched
DEFAULT_MAX_TREE_DEPTH: Final[int] = 64

# Module id Make uses for the immediate predecessor when the caller gives none
DEFAULT_UPSTREAM_REF: Final[int] = 1

CONFIG_FILE_NAME: Final[str] = "flowbridge.yaml"

# Expression texts in log events are clipped to this many characters
LOG_EXPRESSION_MAX_CHARS: Final[int] = 200
