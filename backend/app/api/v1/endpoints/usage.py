from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from backend.app.api.deps import Actor, get_actor, get_db
from backend.services.usage import count_usage

router = APIRouter(prefix="/usage")


@router.get("/{entity}/{entity_id}")
def get_usage(entity: str, entity_id: int, db: Session = Depends(get_db), actor: Actor = Depends(get_actor)):
    counts = count_usage(db, actor.tenant_id, entity, entity_id)
    return {"entity": entity, "id": entity_id, "counts": counts, "in_use": any(counts.values())}
