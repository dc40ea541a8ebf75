from fastapi import Request


MAX_USER_AGENT_LENGTH = 512


def get_client_ip(request: Request) -> str | None:
    # Behind the platform proxy the first X-Forwarded-For hop is the caller.
    forwarded_for = request.headers.get('x-forwarded-for', '')
    first_hop = forwarded_for.split(',')[0].strip()
    if first_hop:
        return first_hop
    return request.client.host if request.client else None


def get_user_agent(request: Request) -> str | None:
    user_agent = request.headers.get('user-agent')
    return user_agent[:MAX_USER_AGENT_LENGTH] if user_agent else None


def get_bearer_token(request: Request) -> str | None:
    scheme, _, token = request.headers.get('authorization', '').partition(' ')
    if scheme.lower() != 'bearer' or not token.strip():
        return None
    return token.strip()
