"""业务异常：服务层抛出，由 main.py 中注册的异常处理器转换为 JSON 响应"""


class ServiceError(Exception):
    status_code = 500
    code = "INTERNAL_ERROR"

    def __init__(self, detail: str, status_code: int | None = None):
        super().__init__(detail)
        self.detail = detail
        if status_code is not None:
            self.status_code = status_code


class ValidationError(ServiceError):
    status_code = 400
    code = "VALIDATION_ERROR"


class NotFoundError(ServiceError):
    status_code = 404
    code = "NOT_FOUND"


class ConflictError(ServiceError):
    status_code = 409
    code = "CONFLICT"


class UnauthenticatedError(ServiceError):
    status_code = 401
    code = "UNAUTHENTICATED"


class ForbiddenError(ServiceError):
    status_code = 403
    code = "FORBIDDEN"


class DomainRuleViolation(ServiceError):
    status_code = 400
    code = "DOMAIN_RULE_VIOLATION"


class NoCopiesAvailableError(DomainRuleViolation):
    code = "NO_COPIES_AVAILABLE"


class AlreadyReturnedError(DomainRuleViolation):
    code = "ALREADY_RETURNED"
