"""Encode and decode the reaction annotation embedded in a prompt's content.

The annotation is the only record of what a prompt's reactions mean, so it is
written once when the prompt is sent and read back every time someone reacts.
"""

import logging
from typing import Any, Dict, Mapping, Optional

from pydantic import ValidationError

from matrix_prompts.core.config import DEFAULT_REACTION_ANNOTATION_KEY
from matrix_prompts.core.exceptions import MalformedAnnotationError, NotAnnotatedError
from matrix_prompts.reactions.models import ReactionAnnotation

logger = logging.getLogger(__name__)

REACTION_ANNOTATION_KEY = DEFAULT_REACTION_ANNOTATION_KEY


def create_annotation(
    listener_name: str,
    reaction_map: Mapping[str, str],
    additional_context: Optional[Dict[str, Any]] = None,
    annotation_key: str = REACTION_ANNOTATION_KEY,
) -> Dict[str, Any]:
    """Create the content fragment that binds reactions to a listener.

    Args:
        listener_name: Name of the listener to call when a mapped reaction arrives
        reaction_map: Reaction keys mapped to the values handed to the listener
        additional_context: Opaque data passed to the listener unchanged
        annotation_key: Reserved content key to store the annotation under

    Returns:
        A dict to merge into the content of the new event
    """
    annotation: Dict[str, Any] = {
        "name": listener_name,
        "reaction_map": dict(reaction_map),
    }
    if additional_context is not None:
        annotation["additional_context"] = additional_context
    return {annotation_key: annotation}


def is_annotated(
    content: Mapping[str, Any], annotation_key: str = REACTION_ANNOTATION_KEY
) -> bool:
    return annotation_key in content


def decode_annotation(
    content: Mapping[str, Any], annotation_key: str = REACTION_ANNOTATION_KEY
) -> ReactionAnnotation:
    """Decode the annotation from event content.

    Raises:
        NotAnnotatedError: The content has no annotation (the common case)
        MalformedAnnotationError: The annotation is present but invalid
    """
    if not is_annotated(content, annotation_key):
        raise NotAnnotatedError(annotation_key)
    try:
        return ReactionAnnotation.model_validate(content[annotation_key])
    except ValidationError as e:
        raise MalformedAnnotationError(annotation_key, e.errors()) from e
