# Overview: Domain error taxonomy and its translation to JSON responses.

"""
Replenish error taxonomy

Every domain failure raised from a service is a ReplenishError. The unit of
work has already been rolled back when one reaches the caller, so nothing
was applied. `retryable` tells the caller whether sending the same request
again can succeed:

- ValidationError      400  bad input, fix and resend
- PermissionDenied     403  actor lacks the admin capability
- NotFound             404  order / item / sale / product missing
- InvalidTransition    409  illegal status change for the current state
- Conflict             409  lost a race on a row; safe to retry
- AlreadyCanceled      409  already happened; never retry blindly
- SequenceExhausted    409  no identifiers left for today
"""

from __future__ import annotations

from flask import current_app, jsonify


class ReplenishError(Exception):
    """Base class for domain errors raised by the engine."""

    code = "error"
    http_status = 400
    retryable = False

    def __init__(self, message: str, details: dict | None = None):
        super().__init__(message)
        self.message = message
        self.details = details or {}

    def to_dict(self) -> dict:
        return {
            "error": self.message,
            "code": self.code,
            "retryable": self.retryable,
            "details": self.details,
        }


class ValidationError(ReplenishError):
    """Missing or malformed input (e.g. submitting an order with no items)."""

    code = "validation_error"
    http_status = 400


class PermissionDenied(ReplenishError):
    code = "permission_denied"
    http_status = 403


class NotFound(ReplenishError):
    code = "not_found"
    http_status = 404


class OrderNotFound(NotFound):
    code = "order_not_found"


class ItemNotFound(NotFound):
    code = "item_not_found"


class SaleNotFound(NotFound):
    code = "sale_not_found"


class ProductNotFound(NotFound):
    code = "product_not_found"


class InvalidTransition(ReplenishError):
    """Requested status change is not an edge of the order state machine."""

    code = "invalid_transition"
    http_status = 409

    def __init__(self, message: str, *, from_status: str | None = None, to_status: str | None = None,
                 details: dict | None = None):
        details = dict(details or {})
        if from_status is not None:
            details.setdefault("from_status", from_status)
        if to_status is not None:
            details.setdefault("to_status", to_status)
        super().__init__(message, details)
        self.from_status = from_status
        self.to_status = to_status


class Conflict(ReplenishError):
    """A concurrent writer won the race for the same row."""

    code = "conflict"
    http_status = 409
    retryable = True


class InsufficientStock(Conflict):
    """A debit would drive stock below zero while negative stock is disallowed."""

    code = "insufficient_stock"
    retryable = False


class TransientConflict(Conflict):
    """Collision that the unit of work retries on its own (sequence seeding)."""

    code = "transient_conflict"


class AlreadyCanceled(ReplenishError):
    """Idempotency guard: the cancellation already happened."""

    code = "already_canceled"
    http_status = 409
    retryable = False


class SequenceExhausted(ReplenishError):
    """The daily identifier range is used up; retrying the same day cannot help."""

    code = "sequence_exhausted"
    http_status = 409
    retryable = False


def internal_error_response():
    body = {"error": "Internal server error", "code": "internal_error", "retryable": False, "details": {}}
    return jsonify(body), 500


def register_error_handlers(app) -> None:
    """Translate domain errors into JSON responses."""

    @app.errorhandler(ReplenishError)
    def handle_replenish_error(exc: ReplenishError):
        return jsonify(exc.to_dict()), exc.http_status

    @app.errorhandler(404)
    def handle_not_found(exc):
        return jsonify({"error": "Not found", "code": "not_found", "retryable": False, "details": {}}), 404

    @app.errorhandler(405)
    def handle_method_not_allowed(exc):
        return jsonify({"error": "Method not allowed", "code": "method_not_allowed", "retryable": False,
                        "details": {}}), 405

    @app.errorhandler(500)
    def handle_internal_error(exc):
        current_app.logger.exception("Unhandled error")
        return internal_error_response()
