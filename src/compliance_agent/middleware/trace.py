"""Request id middleware (correlation across logs and audit rows)."""

from fastapi import Request

from compliance_agent.observability.trace import new_request_id, set_request_id

REQUEST_ID_HEADER = "X-Request-Id"
MAX_INCOMING_LENGTH = 128


async def request_id_middleware(request: Request, call_next):
    incoming = request.headers.get(REQUEST_ID_HEADER, "").strip()
    request_id = incoming[:MAX_INCOMING_LENGTH] if incoming else new_request_id()
    request.state.request_id = request_id
    set_request_id(request_id)
    try:
        response = await call_next(request)
    finally:
        set_request_id(None)
    response.headers[REQUEST_ID_HEADER] = request_id
    return response
