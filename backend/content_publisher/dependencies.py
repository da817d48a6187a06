"""Wiring of the LinkedIn integration services.

One ``IntegrationServices`` bundle is built per application and stored on
``app.state``; routes fetch it with ``get_services``. Tests build their own
bundle around a fake HTTP session.
"""
from __future__ import annotations
import os
from dataclasses import dataclass
from typing import Optional

import requests
from fastapi import Request

from .config import LinkedInSettings, get_linkedin_settings
from .db.session import SessionLocal
from .services.events import EventChannel, subscribe_activity_log
from .services.oauth_session import OAuthSessionManager
from .services.post_publisher import PostPublisher
from .services.profile_resolver import ProfileResolver
from .services.state_store import StateStore, build_state_store
from .services.token_client import TokenExchangeClient
from .services.token_refresh import TokenRefreshPolicy
from .usecases.connect_linkedin import CompleteLinkedInConnection
from .usecases.publish_content import PublishContentJob

STATE_TTL_SECONDS = 600
STATE_MAX_ENTRIES = 500


@dataclass
class IntegrationServices:
    settings: LinkedInSettings
    events: EventChannel
    sessions: OAuthSessionManager
    token_client: TokenExchangeClient
    profile_resolver: ProfileResolver
    refresh_policy: TokenRefreshPolicy
    publisher: PostPublisher
    connect: CompleteLinkedInConnection
    publish_job: PublishContentJob


def build_services(
    settings: Optional[LinkedInSettings] = None,
    state_store: Optional[StateStore] = None,
    http: Optional[requests.Session] = None,
    events: Optional[EventChannel] = None,
    session_factory=None,
    sleep=None,
) -> IntegrationServices:
    settings = settings or get_linkedin_settings()
    if state_store is None:
        state_store = build_state_store(
            os.getenv("OAUTH_STATE_BACKEND", "memory"),
            os.getenv("REDIS_URL", "redis://localhost:6379/0"),
            STATE_TTL_SECONDS,
            STATE_MAX_ENTRIES,
        )
    http = http or requests.Session()
    events = events or subscribe_activity_log(EventChannel())
    sessions = OAuthSessionManager(settings, state_store)
    token_client = TokenExchangeClient(settings, session=http, sleep=sleep)
    profile_resolver = ProfileResolver(settings, session=http, sleep=sleep)
    refresh_policy = TokenRefreshPolicy(token_client)
    publisher = PostPublisher(settings, refresh_policy, events, session=http, sleep=sleep)
    return IntegrationServices(
        settings=settings,
        events=events,
        sessions=sessions,
        token_client=token_client,
        profile_resolver=profile_resolver,
        refresh_policy=refresh_policy,
        publisher=publisher,
        connect=CompleteLinkedInConnection(sessions, token_client, profile_resolver, events),
        publish_job=PublishContentJob(publisher, session_factory or SessionLocal),
    )


def get_services(request: Request) -> IntegrationServices:
    return request.app.state.services
