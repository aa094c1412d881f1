"""Error kinds raised by LLM providers."""


class LLMError(Exception):
    """Generic failure while invoking an LLM."""


class RateLimitedError(LLMError):
    """The provider throttled the request.

    The agents treat this kind specially: instead of failing they fall back to
    a degraded, deterministic output.
    """
