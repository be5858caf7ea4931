"""
Storage adapter for saved generations.

Wraps the CRUD functions with identity checks, validation and transaction
handling so callers only ever see schema objects and taxonomy errors.
"""
from typing import List, Optional

import structlog
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

import crud
import schemas
from exceptions import AuthorizationError, ClientValidationError, GenerationNotFoundError
from validation import MAX_TITLE_LENGTH, validate_create_generation

logger = structlog.get_logger(__name__)


def _require_identity(identity: Optional[schemas.UserIdentity]) -> schemas.UserIdentity:
    if identity is None or not identity.id:
        raise AuthorizationError()
    return identity


class GenerationStore:
    def __init__(self, db: Session):
        self.db = db

    def save(
        self, data: schemas.CreateGenerationData, identity: Optional[schemas.UserIdentity]
    ) -> schemas.SaveGenerationResponse:
        identity = _require_identity(identity)
        validate_create_generation(data)

        try:
            db_generation = crud.create_generation(self.db, data, user_id=identity.id)
            self.db.commit()
        except SQLAlchemyError:
            self.db.rollback()
            logger.error("Failed to save generation", user_id=identity.id, exc_info=True)
            raise

        logger.info(
            "Generation saved",
            user_id=identity.id,
            generation_id=db_generation.id,
            overall_score=db_generation.overall_score,
            letter_length=len(db_generation.cover_letter_text),
        )
        return schemas.SaveGenerationResponse(
            id=db_generation.id, created_at=db_generation.created_at
        )

    def list(self, identity: Optional[schemas.UserIdentity]) -> List[schemas.GenerationSummary]:
        identity = _require_identity(identity)
        rows = crud.get_generations_for_user(self.db, user_id=identity.id)
        return [schemas.GenerationSummary.model_validate(row) for row in rows]

    def get(self, generation_id: str, identity: Optional[schemas.UserIdentity]) -> schemas.Generation:
        identity = _require_identity(identity)
        db_generation = crud.get_generation(self.db, generation_id=generation_id, user_id=identity.id)
        if not db_generation:
            raise GenerationNotFoundError(generation_id)
        return schemas.Generation.model_validate(db_generation)

    def update(
        self,
        generation_id: str,
        data: schemas.UpdateGenerationData,
        identity: Optional[schemas.UserIdentity],
    ) -> schemas.Generation:
        identity = _require_identity(identity)
        if data.title is not None and len(data.title) > MAX_TITLE_LENGTH:
            raise ClientValidationError(
                f"title must be a string of at most {MAX_TITLE_LENGTH} characters", field="title"
            )

        db_generation = crud.update_generation(
            self.db, generation_id=generation_id, user_id=identity.id, data=data
        )
        if not db_generation:
            raise GenerationNotFoundError(generation_id)
        self.db.commit()
        self.db.refresh(db_generation)
        logger.info("Generation updated", user_id=identity.id, generation_id=generation_id)
        return schemas.Generation.model_validate(db_generation)

    def delete(self, generation_id: str, identity: Optional[schemas.UserIdentity]) -> None:
        identity = _require_identity(identity)
        if not crud.delete_generation(self.db, generation_id=generation_id, user_id=identity.id):
            raise GenerationNotFoundError(generation_id)
        self.db.commit()
        logger.info("Generation deleted", user_id=identity.id, generation_id=generation_id)
