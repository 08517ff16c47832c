"""FastAPI dependencies: the identity gate and the process-level services.

Provider clients, the blob store and the conversation store are built once in
the application lifespan and kept on ``app.state``. Pipelines are cheap wiring
objects assembled per request from those shared instances.
"""

from fastapi import Depends, Request
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from sqlmodel import Session

from chathome.core import database
from chathome.core.blobs import BlobStore
from chathome.core.database import get_session
from chathome.core.security import Identity, resolve_identity
from chathome.services.completion import ChatPipeline
from chathome.services.llm.base import BaseLLMProvider
from chathome.services.relay import PeerRelay
from chathome.services.search.base import BaseSearchProvider
from chathome.services.store import ConversationStore

_bearer = HTTPBearer(auto_error=False)


def get_current_user(
    credentials: HTTPAuthorizationCredentials | None = Depends(_bearer),
    session: Session = Depends(get_session),
) -> Identity:
    token = credentials.credentials if credentials else None
    return resolve_identity(session, token)


def get_llm(request: Request) -> BaseLLMProvider:
    return request.app.state.llm


def get_search(request: Request) -> BaseSearchProvider:
    return request.app.state.search


def get_blobs(request: Request) -> BlobStore:
    return request.app.state.blobs


def get_store(request: Request) -> ConversationStore:
    return request.app.state.store


def get_pipeline(
    store: ConversationStore = Depends(get_store),
    llm: BaseLLMProvider = Depends(get_llm),
    search: BaseSearchProvider = Depends(get_search),
    blobs: BlobStore = Depends(get_blobs),
) -> ChatPipeline:
    return ChatPipeline(store=store, llm=llm, search=search, blobs=blobs)


def get_relay(
    store: ConversationStore = Depends(get_store),
    llm: BaseLLMProvider = Depends(get_llm),
) -> PeerRelay:
    return PeerRelay(engine=database.engine, store=store, llm=llm)
