"""
Generator executors.

A generator calls the content-generation collaborator with a bounded
timeout. When the call fails the configured fallback policy decides:

- cache: reuse this node's last good output (degraded success)
- template: emit the configured template (degraded success)
- skip: produce nothing; the node and its downstream are skipped

Without a fallback the failure is surfaced as the node's error.
"""

from __future__ import annotations

from typing import Any, Dict, Optional

from socialflow.content import ContentValue, PortType
from socialflow.errors import GenerationError, NodeTimeoutError
from socialflow.graph.node_types import AIImageConfig, AITextConfig, FallbackPolicy, GeneratorConfig, NodeType
from socialflow.observability import get_logger
from socialflow.platforms.formatter import truncate_text
from socialflow.utils import CallTimeoutError, call_with_timeout

from .base import NodeContext, NodeExecutor, NodeOutcome

logger = get_logger(__name__)


def render_prompt(template: str, context: Optional[ContentValue]) -> str:
    """Substitute ``{context}`` with the upstream value."""
    rendered = context.as_prompt_context() if context is not None else ""
    return template.replace("{context}", rendered)


class GeneratorExecutor(NodeExecutor):
    kind: PortType
    output_port: str

    def parameters(self, config: GeneratorConfig, context_value: Optional[ContentValue]) -> Dict[str, Any]:
        params: Dict[str, Any] = dict(config.parameters)
        params["prompt"] = render_prompt(config.prompt, context_value)
        params["model"] = config.model
        if context_value is not None:
            params["context"] = context_value.as_prompt_context()
        return params

    def accept(self, value: ContentValue, config: GeneratorConfig) -> ContentValue:
        """Check and normalize the collaborator's result."""
        return value

    def template(self, config: GeneratorConfig, context_value: Optional[ContentValue]) -> ContentValue:
        raise NotImplementedError

    def execute(self, inputs: Dict[str, ContentValue], config: GeneratorConfig, context: NodeContext) -> NodeOutcome:
        context_value = inputs.get("context")
        cache_key = f"{context.workflow_id}:{context.node_id}"
        timeout = context.remaining(context.settings.generation_timeout_s)
        try:
            if timeout <= 0:
                raise CallTimeoutError(0, label="generation")
            raw = call_with_timeout(
                context.services.generator.generate_content,
                timeout,
                self.kind,
                self.parameters(config, context_value),
                label=f"{self.node_type.value} generation",
            )
            value = self.accept(raw, config)
        except Exception as e:
            return self._fallback(e, config, context, context_value, cache_key)

        context.services.fallback_cache.put(cache_key, value)
        return NodeOutcome(outputs={self.output_port: value})

    def _fallback(
        self,
        error: Exception,
        config: GeneratorConfig,
        context: NodeContext,
        context_value: Optional[ContentValue],
        cache_key: str,
    ) -> NodeOutcome:
        policy = config.fallback
        logger.warning(
            "Generation failed",
            extra={
                "execution_id": context.execution_id,
                "node_id": context.node_id,
                "error": str(error),
                "fallback": policy.value if policy else None,
            },
        )

        if policy is None:
            if isinstance(error, TimeoutError):
                raise NodeTimeoutError(f"Generation timed out: {error}") from error
            if isinstance(error, GenerationError):
                raise error
            raise GenerationError(f"Generation failed: {error}") from error

        if policy == FallbackPolicy.CACHE:
            cached = context.services.fallback_cache.get(cache_key)
            if cached is None:
                raise GenerationError(
                    f"Generation failed and no cached output exists: {error}",
                    actionable="Run the workflow successfully once or choose another fallback",
                ) from error
            return NodeOutcome(outputs={self.output_port: cached}, degraded=True, fallback=policy.value)

        if policy == FallbackPolicy.TEMPLATE:
            value = self.template(config, context_value)
            return NodeOutcome(outputs={self.output_port: value}, degraded=True, fallback=policy.value)

        return NodeOutcome(
            skipped=True,
            fallback=policy.value,
            skip_reason=f"Generation failed, fallback policy is skip: {error}",
        )


class AITextExecutor(GeneratorExecutor):
    node_type = NodeType.AI_TEXT
    kind = PortType.TEXT
    output_port = "text"

    def parameters(self, config: AITextConfig, context_value: Optional[ContentValue]) -> Dict[str, Any]:
        params = super().parameters(config, context_value)
        params["temperature"] = config.temperature
        if config.max_length is not None:
            params["max_length"] = config.max_length
        return params

    def accept(self, value: ContentValue, config: AITextConfig) -> ContentValue:
        if not isinstance(value, ContentValue) or not value.text:
            raise GenerationError("Generator returned no text")
        if config.max_length is not None and len(value.text) > config.max_length:
            return ContentValue.of_text(truncate_text(value.text, config.max_length))
        return ContentValue.of_text(value.text)

    def template(self, config: AITextConfig, context_value: Optional[ContentValue]) -> ContentValue:
        return ContentValue.of_text(render_prompt(config.template_text or "", context_value))


class AIImageExecutor(GeneratorExecutor):
    node_type = NodeType.AI_IMAGE
    kind = PortType.IMAGE
    output_port = "image"

    def parameters(self, config: AIImageConfig, context_value: Optional[ContentValue]) -> Dict[str, Any]:
        params = super().parameters(config, context_value)
        params["width"] = config.width
        params["height"] = config.height
        return params

    def accept(self, value: ContentValue, config: AIImageConfig) -> ContentValue:
        if not isinstance(value, ContentValue):
            raise GenerationError("Generator returned no image")
        images = [m for m in value.media if m.media_type == PortType.IMAGE]
        if not images:
            raise GenerationError("Generator returned no image")
        return ContentValue(kind=PortType.IMAGE, media=images)

    def template(self, config: AIImageConfig, context_value: Optional[ContentValue]) -> ContentValue:
        return ContentValue.of_media(config.template_media)


__all__ = ["GeneratorExecutor", "AITextExecutor", "AIImageExecutor", "render_prompt"]
