"""
Article generation for the Stratis writer.

This package contains the generation pipeline and its collaborators.
"""

from .errors import (
    FailureKind,
    ClassifiedFailure,
    GenerationError,
    InvalidRequestError,
    MalformedResponseError,
    RunFailedError,
    classify_failure,
    is_retry_eligible,
    format_failure_message,
)

from .retry import (
    execute_with_retry,
    backoff_delay,
)

from .images import (
    render_visuals,
    apply_image_substitutions,
    substitute_image,
)

from .llm import (
    GeminiContentService,
)

from .pipeline import (
    ContentService,
    GenerationPipeline,
)
