"""
Error taxonomy for Interaction Service

Every error carries the HTTP status and numeric code the API layer
renders, so handlers in main.py stay generic.
"""


class InteractionError(Exception):
    """Base class for all service errors"""

    status: int = 500
    code: int = -10000

    def __init__(self, message: str = "Internal error"):
        super().__init__(message)
        self.message = message


class ValidationError(InteractionError):
    status = 400
    code = -10100


class ContentTooLong(ValidationError):
    """Content exceeds the configured length bound"""

    code = -10101

    def __init__(self, length: int, limit: int):
        super().__init__(f"Content length {length} exceeds limit of {limit}")
        self.length = length
        self.limit = limit


class NotFoundOrForbidden(InteractionError):
    """Entity is missing or the requester is not its author.

    The two cases are deliberately indistinguishable so callers cannot
    probe for the existence of posts they do not own.
    """

    status = 404
    code = -10404

    def __init__(self, message: str = "Post not found"):
        super().__init__(message)


class PostNotFound(InteractionError):
    status = 404
    code = -10405

    def __init__(self, post_id: str):
        super().__init__("Post not found")
        self.post_id = post_id


class CommentNotFound(InteractionError):
    status = 404
    code = -10406

    def __init__(self, comment_id: str):
        super().__init__("Comment not found")
        self.comment_id = comment_id


class DuplicateLike(InteractionError):
    """Raised by stores when the (user, target) uniqueness constraint fires"""

    status = 409
    code = -10409

    def __init__(self, user_id: str, target_id: str):
        super().__init__("Already liked")
        self.user_id = user_id
        self.target_id = target_id


class StoreUnavailable(InteractionError):
    """Primary store could not complete an atomic unit"""

    status = 503
    code = -10503

    def __init__(self, message: str = "Storage temporarily unavailable, please retry"):
        super().__init__(message)


class IndexUnavailable(InteractionError):
    """Search index is degraded"""

    status = 503
    code = -20503

    def __init__(self, message: str = "Search temporarily unavailable"):
        super().__init__(message)
