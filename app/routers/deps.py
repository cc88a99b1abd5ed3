"""Shared FastAPI dependencies."""
from fastapi import Depends, HTTPException, Request, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from jose import JWTError

from app.config import settings
from app.database import get_database
from app.repositories.entry_repository import EntryRepository, MongoEntryRepository
from app.repositories.price_catalog import MongoPriceCatalog, PriceCatalog
from app.repositories.project_repository import MongoProjectRepository
from app.services.pricing_service import PricingService
from app.services.timer_service import TimerService
from app.services.valuation_service import ValuationService
from app.utils.auth import verify_access_token

security = HTTPBearer(auto_error=False)


async def get_current_user_id(
    credentials: HTTPAuthorizationCredentials | None = Depends(security),
) -> str:
    """
    Dependency to get current user ID from JWT token.

    Raises:
        HTTPException: If token is missing or invalid (401)
    """
    if credentials is None:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Not authenticated",
        )

    try:
        return verify_access_token(credentials.credentials)
    except JWTError:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid authentication credentials",
        )


def get_entry_repository(db=Depends(get_database)) -> EntryRepository:
    return MongoEntryRepository(db)


def get_price_catalog(db=Depends(get_database)) -> PriceCatalog:
    return MongoPriceCatalog(db)


def get_project_repository(db=Depends(get_database)) -> MongoProjectRepository:
    return MongoProjectRepository(db)


def get_ticker(request: Request):
    """The application's TimerTicker, if the lifespan created one."""
    return getattr(request.app.state, "ticker", None)


def get_timer_service(
    repository: EntryRepository = Depends(get_entry_repository),
    ticker=Depends(get_ticker),
) -> TimerService:
    return TimerService(
        repository,
        ticker=ticker,
        grid_minutes=settings.quantization_grid_minutes,
    )


def get_valuation_service(
    repository: EntryRepository = Depends(get_entry_repository),
    catalog: PriceCatalog = Depends(get_price_catalog),
    projects: MongoProjectRepository = Depends(get_project_repository),
) -> ValuationService:
    return ValuationService(repository, PricingService(catalog), projects)
