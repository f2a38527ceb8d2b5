"""
FastAPI dependencies for the acting identity and the service layer.
"""

from typing import Annotated, Optional

from fastapi import Depends, Header, HTTPException, status

from gigescrow.kernel.identity.address import InvalidAddressError, normalize_address
from gigescrow.kernel.ledger.client import LedgerReader
from gigescrow.orchestration.job_actions import JobActions
from gigescrow.orchestration.retrieval import DeliverableRetrieval
from gigescrow.services import ServiceRegistry, get_services

ACTOR_HEADER = "X-Actor-Address"


Services = Annotated[ServiceRegistry, Depends(get_services)]


async def get_current_actor(
    x_actor_address: Annotated[Optional[str], Header(alias=ACTOR_HEADER)] = None,
) -> str:
    """Acting identity as supplied by the identity provider (wallet session)."""
    if not x_actor_address:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail=f"{ACTOR_HEADER} header is required",
        )
    try:
        return normalize_address(x_actor_address)
    except InvalidAddressError:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=f"{ACTOR_HEADER} is not a valid address",
        )


async def get_optional_actor(
    x_actor_address: Annotated[Optional[str], Header(alias=ACTOR_HEADER)] = None,
) -> Optional[str]:
    """Acting identity if present and well-formed, None otherwise."""
    if not x_actor_address:
        return None
    try:
        return normalize_address(x_actor_address)
    except InvalidAddressError:
        return None


CurrentActor = Annotated[str, Depends(get_current_actor)]
OptionalActor = Annotated[Optional[str], Depends(get_optional_actor)]


def get_ledger(services: Services) -> LedgerReader:
    return services.ledger


def get_job_actions(services: Services, actor: CurrentActor) -> JobActions:
    return services.job_actions_for(actor)


def get_retrieval(services: Services) -> DeliverableRetrieval:
    return services.retrieval()


Ledger = Annotated[LedgerReader, Depends(get_ledger)]
Actions = Annotated[JobActions, Depends(get_job_actions)]
Retrieval = Annotated[DeliverableRetrieval, Depends(get_retrieval)]
