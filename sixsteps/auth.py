from fastapi import Header, HTTPException

from .config import settings


async def get_api_key(x_api_key: str = Header(..., alias="x-api-key")):
    """
    Validate API key from x-api-key header.
    Default key is 'mySecretKey123' if SIXSTEPS_API_KEY is not set.
    """
    if settings.api_key and x_api_key != settings.api_key:
        raise HTTPException(status_code=403, detail="Invalid API Key")
    return x_api_key
