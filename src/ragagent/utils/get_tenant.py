from fastapi import Request

CANDIDATE_HEADER_KEYS = [
    "x-tenant-id",
]


def get_tenant_from_request(req: Request) -> str | None:
    for key in CANDIDATE_HEADER_KEYS:
        value = req.headers.get(key)
        if value and value.strip():
            return value.strip()
    return None
