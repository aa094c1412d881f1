"""Registry of the tools the Reaction Agent can call."""

from __future__ import annotations

import logging
from typing import Any

from .models import ToolDescriptor, ToolExecutor

logger = logging.getLogger(__name__)


class ToolRegistryError(Exception):
    """Base class for registry contract violations."""


class ToolNotFoundError(ToolRegistryError):
    """No tool is registered under the requested name."""

    def __init__(self, name: str):
        super().__init__(f"Tool not found: {name}")
        self.name = name


class MissingRequiredParameterError(ToolRegistryError):
    """A required tool parameter is absent or null."""

    def __init__(self, tool_name: str, parameter: str):
        super().__init__(
            f"Missing required parameter '{parameter}' for tool '{tool_name}'"
        )
        self.tool_name = tool_name
        self.parameter = parameter


class ToolRegistry:
    """
    Name to capability map.

    Tools are described to the model in registration order. Registering a
    name twice replaces the earlier tool in place.
    """

    def __init__(self):
        self._descriptors: dict[str, ToolDescriptor] = {}
        self._executors: dict[str, ToolExecutor] = {}

    def register(self, descriptor: ToolDescriptor, executor: ToolExecutor) -> None:
        """
        Register a tool.

        Args:
            descriptor: Tool name, description and parameters
            executor: Async callable receiving the parameter dict
        """
        if descriptor.name in self._descriptors:
            logger.warning(f"Replacing already registered tool: {descriptor.name}")
        self._descriptors[descriptor.name] = descriptor
        self._executors[descriptor.name] = executor
        logger.info(f"Registered tool: {descriptor.name}")

    def has_tool(self, name: str) -> bool:
        return name in self._descriptors

    def describe(self) -> list[ToolDescriptor]:
        """All descriptors in registration order."""
        return list(self._descriptors.values())

    async def execute(self, name: str, params: dict[str, Any] | None = None) -> str:
        """
        Validate parameters and run a tool.

        Args:
            name: Registered tool name
            params: Parameters for the tool

        Returns:
            Observation text produced by the executor

        Raises:
            ToolNotFoundError: If no tool is registered under ``name``
            MissingRequiredParameterError: If a required parameter is missing
        """
        descriptor = self._descriptors.get(name)
        if descriptor is None:
            raise ToolNotFoundError(name)

        params = dict(params or {})
        for required in descriptor.required_params:
            if params.get(required) is None:
                raise MissingRequiredParameterError(name, required)

        logger.info(f"Executing tool {name} with {params}")
        return await self._executors[name](params)

    def describe_text(self) -> str:
        """
        Get human-readable tool descriptions.

        Returns:
            Formatted string describing all registered tools
        """
        lines = []
        for descriptor in self._descriptors.values():
            lines.append(f"- {descriptor.name}: {descriptor.description}")
            for param in descriptor.parameters:
                flag = "required" if param.required else "optional"
                lines.append(
                    f"    {param.name} ({param.type}, {flag}): {param.description}"
                )
        return "\n".join(lines)
