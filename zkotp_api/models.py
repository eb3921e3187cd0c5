from pydantic import BaseModel, Field
from typing import List, Optional, Union


class RegisterRequest(BaseModel):
    uid: str
    secret: str


class AuthorizeRequest(BaseModel):
    uid: str
    otp: str
    to: str
    value: Union[int, str] = 0
    data: str = "0x"


class ProofCalldata(BaseModel):
    a: List[str]
    b: List[List[str]]
    c: List[str]
    publicInput: List[str]


class AuthorizeResponse(BaseModel):
    status: str = "ok"
    proof: ProofCalldata


class CheckResponse(BaseModel):
    registered: bool


class StatusResponse(BaseModel):
    status: str
    message: Optional[str] = None


class HealthResponse(BaseModel):
    status: str
    env: str
    store: str
    prover: str
    artifacts: dict = Field(default_factory=dict)
