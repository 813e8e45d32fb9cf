class GatewayError(Exception):
    """HTTP 에러 페이로드({"error": ...})로 변환되는 예외의 베이스"""
    status_code = 500

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class ChatValidationError(GatewayError):
    status_code = 400


class ServerBusyError(GatewayError):
    status_code = 429


class UpstreamError(GatewayError):
    status_code = 502


class MalformedModelOutput(Exception):
    # gateway 안에서 사과 문구로 복구되므로 HTTP로 나가지 않음
    pass
