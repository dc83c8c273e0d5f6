"""
Provisioning Orchestrator - new user creation.

    init -> identity_created -> tenant_created -> profile_linked -> complete

Failure states:
    conflict         email already known, nothing executed
    identity_failed  gateway error/timeout, nothing persisted
    tenant_failed    identity exists (orphaned), no tenant
    profile_failed   identity + tenant exist (orphaned), not linked

Completed steps are never rolled back: deleting an identity at the gateway is
not always possible, so the outcome reports exactly what was left behind and
the run is stored in provisioning_runs for reconciliation.
"""
import asyncio
import logging
from dataclasses import dataclass, field
from typing import Awaitable, Callable, List, Optional

from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from dorm.config import config
from dorm.database.core import AsyncSessionLocal
from dorm.database.models import Identity, ProvisioningRun, ProvisioningState, ResidentType
from dorm.errors import (
    DormError, DependencyError, DependencyTimeoutError, DuplicateEmailError, PartialSuccessError
)
from dorm.schemas.validation import ProvisioningRequest, parse
from dorm.services.identity_gateway import IdentityGateway, IdentityRequest
from dorm.services.profile_service import link_profile
from dorm.services.tenant_service import create_tenant

TenantCreator = Callable[[AsyncSession, dict], Awaitable[int]]
ProfileLinker = Callable[[AsyncSession, str, int], Awaitable[object]]

_PARTIAL_STATES = (ProvisioningState.tenant_failed, ProvisioningState.profile_failed)


@dataclass
class ProvisioningOutcome:
    """Result of one provisioning run. Never raised, always returned."""
    email: str
    state: ProvisioningState = ProvisioningState.init
    completed_steps: List[ProvisioningState] = field(default_factory=list)
    identity_id: Optional[str] = None
    tenant_id: Optional[int] = None
    error: Optional[DormError] = None
    run_id: Optional[int] = None

    @property
    def ok(self) -> bool:
        return self.state == ProvisioningState.complete

    @property
    def is_partial(self) -> bool:
        return self.state in _PARTIAL_STATES

    @property
    def orphaned_identity_id(self) -> Optional[str]:
        return self.identity_id if self.is_partial else None

    @property
    def orphaned_tenant_id(self) -> Optional[int]:
        return self.tenant_id if self.state == ProvisioningState.profile_failed else None

    def advance(self, state: ProvisioningState):
        self.completed_steps.append(state)
        self.state = state

    def raise_for_state(self):
        """Raise the stored error unless the run completed."""
        if self.error is not None:
            raise self.error

    def to_dict(self) -> dict:
        return {
            "email": self.email,
            "state": self.state.value,
            "completed_steps": [s.value for s in self.completed_steps],
            "identity_id": self.identity_id,
            "tenant_id": self.tenant_id,
            "orphaned_identity_id": self.orphaned_identity_id,
            "orphaned_tenant_id": self.orphaned_tenant_id,
            "error": self.error.to_dict() if self.error else None,
        }


class ProvisioningOrchestrator:
    def __init__(
        self,
        gateway: IdentityGateway,
        session_factory: async_sessionmaker = AsyncSessionLocal,
        timeout: Optional[float] = None,
        tenant_creator: TenantCreator = create_tenant,
        profile_linker: ProfileLinker = link_profile
    ):
        self.gateway = gateway
        self.session_factory = session_factory
        self.timeout = timeout if timeout is not None else config.IDENTITY_GATEWAY_TIMEOUT
        self.tenant_creator = tenant_creator
        self.profile_linker = profile_linker

    async def provision(self, request, access_token: str) -> ProvisioningOutcome:
        """
        Create identity, tenant and profile for a new user.

        `request` is a dict or ProvisioningRequest. Raises ValidationError for
        bad input (nothing executed); every other failure is reported in the
        returned outcome.
        """
        req = parse(ProvisioningRequest, request)
        outcome = ProvisioningOutcome(email=req.email)

        async with self.session_factory() as session:
            # Email is the idempotency key
            if await self._identity_exists(session, req.email):
                self._fail(outcome, ProvisioningState.conflict, DuplicateEmailError(
                    f"Email {req.email} is already registered", email=req.email
                ))
                await self._record_run(outcome)
                return outcome

            # Step 1: identity at the gateway
            identity_id = await self._issue_identity(outcome, req, access_token)
            if identity_id is None:
                await self._record_run(outcome)
                return outcome
            outcome.identity_id = identity_id

            # Step 2: tenant record
            try:
                session.add(Identity(id=identity_id, email=req.email, role=req.role))
                await session.commit()
                outcome.advance(ProvisioningState.identity_created)

                outcome.tenant_id = await self.tenant_creator(session, {
                    "first_name": req.first_name,
                    "last_name": req.last_name,
                    "email": req.email,
                    "phone": req.phone,
                    "address": req.address,
                    "residents": ResidentType.primary.value,
                })
                outcome.advance(ProvisioningState.tenant_created)
            except Exception as e:
                await session.rollback()
                self._fail_partial(outcome, ProvisioningState.tenant_failed, e)
                await self._record_run(outcome)
                return outcome

            # Step 3: profile link
            try:
                await self.profile_linker(session, identity_id, outcome.tenant_id)
                outcome.advance(ProvisioningState.profile_linked)
            except Exception as e:
                await session.rollback()
                self._fail_partial(outcome, ProvisioningState.profile_failed, e)
                await self._record_run(outcome)
                return outcome

        outcome.state = ProvisioningState.complete
        logging.info(f"Provisioned {req.email}: identity {identity_id}, tenant {outcome.tenant_id}")
        await self._record_run(outcome)
        return outcome

    async def _identity_exists(self, session: AsyncSession, email: str) -> bool:
        stmt = select(Identity.id).where(Identity.email == email)
        result = await session.execute(stmt)
        exists = result.first() is not None
        await session.rollback()  # release the read transaction before the remote call
        return exists

    async def _issue_identity(
        self,
        outcome: ProvisioningOutcome,
        req: ProvisioningRequest,
        access_token: str
    ) -> Optional[str]:
        identity_request = IdentityRequest(
            email=req.email,
            password=req.password,
            first_name=req.first_name,
            last_name=req.last_name,
            phone=req.phone,
            role=req.role
        )
        try:
            return await asyncio.wait_for(
                self.gateway.create_identity(identity_request, access_token),
                timeout=self.timeout
            )
        except DuplicateEmailError as e:
            self._fail(outcome, ProvisioningState.conflict, e)
        except asyncio.TimeoutError:
            self._fail(outcome, ProvisioningState.identity_failed, DependencyTimeoutError(
                f"Identity gateway did not answer within {self.timeout}s", email=req.email
            ))
        except DependencyError as e:
            self._fail(outcome, ProvisioningState.identity_failed, e)
        return None

    def _fail(self, outcome: ProvisioningOutcome, state: ProvisioningState, error: DormError):
        outcome.state = state
        outcome.error = error
        logging.warning(f"Provisioning {outcome.email}: {state.value} ({error.message})")

    def _fail_partial(self, outcome: ProvisioningOutcome, state: ProvisioningState, cause: Exception):
        if isinstance(cause, SQLAlchemyError):
            cause = DependencyError(f"Database error: {cause}")
        elif not isinstance(cause, DormError):
            cause = DependencyError(f"Unexpected error: {type(cause).__name__}: {cause}")
        outcome.state = state
        outcome.error = PartialSuccessError(
            f"Provisioning of {outcome.email} stopped at {state.value}: {cause.message}",
            failed_step=state.value,
            completed_steps=[s.value for s in outcome.completed_steps],
            cause=cause,
            identity_id=outcome.identity_id,
            tenant_id=outcome.tenant_id
        )
        logging.error(
            f"Provisioning {outcome.email}: {state.value}, orphaned identity {outcome.identity_id}"
            + (f", orphaned tenant {outcome.tenant_id}" if outcome.tenant_id else "")
            + f" ({cause.message})"
        )

    async def _record_run(self, outcome: ProvisioningOutcome):
        """Persist the run as an orphan marker / audit row."""
        error = outcome.error
        try:
            async with self.session_factory() as session:
                run = ProvisioningRun(
                    email=outcome.email,
                    state=outcome.state.value,
                    identity_id=outcome.identity_id,
                    tenant_id=outcome.tenant_id,
                    error_kind=error.kind if error else None,
                    error_message=error.message if error else None
                )
                session.add(run)
                await session.commit()
                outcome.run_id = run.id
        except SQLAlchemyError:
            # The outcome still carries the orphan ids for the caller
            logging.exception(f"Failed to record provisioning run for {outcome.email}")


async def list_orphaned_runs(session: AsyncSession) -> List[ProvisioningRun]:
    """Runs that left an identity (and maybe a tenant) behind."""
    stmt = (
        select(ProvisioningRun)
        .where(ProvisioningRun.state.in_([s.value for s in _PARTIAL_STATES]))
        .order_by(ProvisioningRun.id)
    )
    result = await session.execute(stmt)
    return list(result.scalars().all())
