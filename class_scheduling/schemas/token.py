# class_scheduling/schemas/token.py
from pydantic import BaseModel


class TokenPayload(BaseModel):
    sub: str
