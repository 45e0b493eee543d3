from fastapi import Header, HTTPException, Request
from jose import JWTError, jwt


def verify_token(request: Request, authorization: str = Header(...)):
    secret = request.app.state.settings.jwt_secret
    try:
        scheme, token = authorization.split()
        if scheme.lower() != "bearer" or not secret:
            raise JWTError("bearer token required")
        jwt.decode(token, secret, algorithms=["HS256"])
    except (ValueError, JWTError):
        raise HTTPException(status_code=401, detail="Invalid or missing token")
