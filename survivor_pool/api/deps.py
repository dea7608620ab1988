from fastapi import Depends, HTTPException, Request, status
from fastapi.security import OAuth2PasswordBearer
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select
from jose import JWTError

from survivor_pool.core.database import get_db
from survivor_pool.core.errors import EngineError, MissingRankingsError
from survivor_pool.core.security import decode_access_token
from survivor_pool.models.models import Player
from survivor_pool.services.leaderboard_cache import LeaderboardCache

# Tokens come from the external auth service
oauth2_scheme = OAuth2PasswordBearer(tokenUrl="/api/auth/login")


async def get_current_player(
    token: str = Depends(oauth2_scheme),
    db: AsyncSession = Depends(get_db),
) -> Player:
    credentials_exception = HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail="Invalid or expired token",
        headers={"WWW-Authenticate": "Bearer"},
    )
    try:
        payload = decode_access_token(token)
        player_id = int(payload.get("sub"))
    except (JWTError, ValueError, TypeError):
        raise credentials_exception

    result = await db.execute(select(Player).where(Player.id == player_id))
    player = result.scalar_one_or_none()
    if player is None:
        raise credentials_exception
    return player


async def require_admin(
    current_player: Player = Depends(get_current_player),
) -> Player:
    if not current_player.is_admin:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Admin access required",
        )
    return current_player


def get_leaderboard_cache(request: Request) -> LeaderboardCache:
    return request.app.state.leaderboard_cache


def to_http_exception(error: EngineError) -> HTTPException:
    if isinstance(error, MissingRankingsError):
        detail = {"message": error.message, "missing_players": error.missing_players}
        return HTTPException(status_code=error.status_code, detail=detail)
    return HTTPException(status_code=error.status_code, detail=error.message)


async def commit_and_invalidate(db: AsyncSession, cache: LeaderboardCache) -> None:
    """
    Commit the request's writes, then drop the cached leaderboard. In that
    order a concurrent rebuild either sees the committed rows or has its
    result discarded by the cache.
    """
    await db.commit()
    cache.invalidate()
