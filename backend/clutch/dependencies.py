"""
Clutch Backend — Request Dependencies
=======================================

What:  FastAPI dependencies that hand route handlers their collaborators.
How:   Everything shared lives on `app.state` (set up by create_app), so
       tests build an app with their own store, flag service or email
       provider and nothing global has to be patched.

    get_store          → app.state.store when one is attached (memory
                         backend, tests), otherwise a SQLDocumentStore bound
                         to a fresh session committed after the handler
    get_feature_flags  → app.state.feature_flags
    get_email_service  → EmailService over the request's store
"""

from typing import AsyncIterator

from fastapi import Depends, Request

from clutch.database import session_scope
from clutch.services.email_service import EmailService
from clutch.services.feature_flags import FeatureFlagService
from clutch.services.sql_store import SQLDocumentStore
from clutch.services.store_base import DocumentStore


async def get_store(request: Request) -> AsyncIterator[DocumentStore]:
    store = getattr(request.app.state, "store", None)
    if store is not None:
        yield store
        return
    async with session_scope() as session:
        yield SQLDocumentStore(session)


def get_feature_flags(request: Request) -> FeatureFlagService:
    return request.app.state.feature_flags


def get_email_service(
    request: Request,
    store: DocumentStore = Depends(get_store),
) -> EmailService:
    return EmailService(store, request.app.state.email_provider)
