###
# © 2025 Amazon Web Services, Inc. or its affiliates. All Rights Reserved.
# This AWS Content is provided subject to the terms of the AWS Customer Agreement
# available at http://aws.amazon.com/agreement or other written agreement between
# Customer and either Amazon Web Services, Inc. or Amazon Web Services EMEA SARL or both.
###


class ServiceException(Exception):
    "Raised from internal services"

    pass


class ValidationError(ServiceException, ValueError):
    "Raised when arguments for a request do not pass local validation"

    pass


class RecordShapeError(ValidationError):
    "Raised when an array or label vector does not have the expected rank"

    pass


class LabelShapeMismatchError(ValidationError):
    "Raised when the label vector does not match any dimension of the array"

    pass


class UnsupportedDtypeError(ValidationError):
    "Raised when an array element type has no tensor representation"

    pass


class TruncatedRecordError(ServiceException):
    "Raised when a RecordIO stream ends in the middle of a record"

    pass


class HyperparameterValidationError(ValidationError):
    "Raised when a hyperparameter value fails its schema"

    pass


class UnexpectedStatusException(ServiceException):
    "Raised when a job or endpoint reaches a terminal status other than the expected one"

    def __init__(self, message, allowed_statuses, actual_status):
        self.allowed_statuses = allowed_statuses
        self.actual_status = actual_status
        super().__init__(message)


class WaitTimeoutError(ServiceException):
    "Raised when polling for a terminal status runs out of time"

    def __init__(self, message, last_status=None):
        self.last_status = last_status
        super().__init__(message)


def raise_error(message: str, exc=ServiceException):
    raise exc(message)
