"""
Request-scoped access to the services created at startup (app.state).
"""
import uuid

from fastapi import Request

from crimelab.config import Settings
from crimelab.repositories import CaseRepository, EvidenceLedger
from crimelab.services.activity_recorder import ActivityRecorder
from crimelab.services.resolution_committer import ResolutionCommitter
from crimelab.services.storefront_client import StorefrontClient

# Stamped on every activity this process writes
WORKER_ID = f"api-{uuid.uuid4().hex[:8]}"


def get_settings_dep(request: Request) -> Settings:
    return request.app.state.settings


def get_case_repository(request: Request) -> CaseRepository:
    return request.app.state.cases


def get_evidence_ledger(request: Request) -> EvidenceLedger:
    return request.app.state.ledger


def get_recorder(request: Request) -> ActivityRecorder:
    return request.app.state.recorder


def get_committer(request: Request) -> ResolutionCommitter:
    return request.app.state.committer


def get_storefront(request: Request) -> StorefrontClient:
    return request.app.state.storefront
