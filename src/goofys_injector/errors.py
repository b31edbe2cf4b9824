class AdmissionControllerError(Exception):
    """Base admission controller error"""

    def __init__(self, status_code: int, message: str):
        super().__init__(message)
        self.status_code = status_code
        self.message = message


class DecodeError(AdmissionControllerError):
    """Unable to decode an admission review or the pod inside it"""

    def __init__(self, message: str):
        super().__init__(status_code=400, message=message)


class AnnotationParseError(AdmissionControllerError):
    """The injection annotation is present, but is not a boolean"""

    def __init__(self, message: str):
        super().__init__(status_code=422, message=message)


class CredentialLookupError(Exception):
    """
    Credentials of a storage profile could not be obtained.
    Never fatal for a request: the affected instance is skipped.
    """

    def __init__(self, mount: str, profile: str):
        super().__init__(f"unable to obtain credentials at {mount}/{profile}")
        self.mount = mount
        self.profile = profile


class VaultError(Exception): ...
