"""Builder for expression evaluation contexts.

A context is a plain mapping of root names to JSON data::

    {
        "$json": {...},       # item data from the upstream node/module
        "$env": {...},        # environment variables
        "$workflow": {...},   # workflow/scenario metadata
        "$node": {...},       # n8n only: data of named nodes
        "$parameter": {...},  # n8n only: parameters of the current node
    }

The builder deep-copies everything handed to it, so a built context never
aliases caller data and evaluating against it cannot change the caller's
objects.
"""

from __future__ import annotations

import copy
import os
from collections.abc import Mapping
from typing import Any, Self

__all__ = ["ExpressionContextBuilder"]


class ExpressionContextBuilder:
    """Fluent builder for evaluation contexts.

    Example:
        ```python
        context = (
            ExpressionContextBuilder()
            .with_json_data({"id": 42})
            .with_workflow_metadata({"name": "Order sync"})
            .build_n8n_context()
        )
        evaluate_expression("={{ $json.id }}", context)  # 42
        ```
    """

    def __init__(self) -> None:
        self._context: dict[str, Any] = {
            "$json": {},
            "$env": {},
            "$workflow": {},
        }

    def with_json_data(self, data: Mapping[str, Any]) -> Self:
        """Merge item data into ``$json``; later keys win."""
        self._context["$json"] = {**self._context["$json"], **copy.deepcopy(dict(data))}
        return self

    def with_workflow_metadata(self, metadata: Mapping[str, Any]) -> Self:
        """Merge workflow metadata into ``$workflow``."""
        self._context["$workflow"] = {
            **self._context["$workflow"],
            **copy.deepcopy(dict(metadata)),
        }
        return self

    def with_env(self, variables: Mapping[str, str] | None = None) -> Self:
        """Set ``$env``.

        Args:
            variables: Variables to expose. None exposes a snapshot of the
                process environment.
        """
        source = os.environ if variables is None else variables
        self._context["$env"] = {str(k): str(v) for k, v in source.items()}
        return self

    def with_custom_variable(self, key: str, value: Any) -> Self:
        self._context[key] = copy.deepcopy(value)
        return self

    def with_custom_variables(self, variables: Mapping[str, Any]) -> Self:
        for key, value in variables.items():
            self._context[key] = copy.deepcopy(value)
        return self

    def build(self) -> dict[str, Any]:
        """Return the context without platform-specific roots."""
        return copy.deepcopy(self._context)

    def build_n8n_context(self) -> dict[str, Any]:
        """Return the context with the n8n roots ``$node`` and ``$parameter``.

        Existing values for those roots (set as custom variables) are kept.
        """
        context = self.build()
        context.setdefault("$node", {})
        context.setdefault("$parameter", {})
        return context

    def build_make_context(self) -> dict[str, Any]:
        """Return the context for Make expressions.

        Make expressions are translated to the n8n dialect before evaluation,
        so they read the same roots; the upstream module's data is ``$json``.
        """
        return self.build()

    @classmethod
    def from_n8n_workflow(cls, workflow: Mapping[str, Any] | None) -> dict[str, Any]:
        """Build an n8n context preloaded with a workflow's id, name and state."""
        builder = cls()
        if workflow:
            builder.with_workflow_metadata(
                {
                    "id": workflow.get("id") or "",
                    "name": workflow.get("name") or "",
                    "active": bool(workflow.get("active", False)),
                }
            )
        return builder.build_n8n_context()

    @classmethod
    def from_make_workflow(cls, workflow: Mapping[str, Any] | None) -> dict[str, Any]:
        """Build a Make context preloaded with a scenario's id and name."""
        builder = cls()
        if workflow:
            builder.with_workflow_metadata(
                {
                    "id": workflow.get("id") or "",
                    "name": workflow.get("name") or "",
                }
            )
        return builder.build_make_context()
