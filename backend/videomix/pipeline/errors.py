"""
Pipeline compilation error types.
"""


class CompileError(Exception):
    """Base exception for pipeline compilation failures."""
    pass


class UnsupportedTransitionCombination(CompileError):
    """Raised when a plan asks for a transition that cannot be built."""

    def __init__(self, plan_index: int, reason: str):
        self.plan_index = plan_index
        self.reason = reason
        super().__init__(f"Plan {plan_index}: unsupported transition: {reason}")


class EncodingProfileInvalid(CompileError):
    """Raised when codec, format, resolution or bitrate fall outside supported ranges."""

    def __init__(self, reason: str):
        self.reason = reason
        super().__init__(f"Invalid encoding profile: {reason}")
