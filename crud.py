from sqlalchemy.orm import Session

import models
import schemas


# --- Generation CRUD ---
# Every query is scoped by user_id; a row owned by someone else is simply not found.
def create_generation(db: Session, data: schemas.CreateGenerationData, user_id: str):
    """Insert a new generation row. Repeated calls create distinct rows."""
    db_generation = models.Generation(
        user_id=user_id,
        job_title=data.job_title.strip(),
        company_name=data.company_name.strip(),
        overall_score=data.overall_score,
        cover_letter_text=data.cover_letter_text,
        scoring_results_json=data.scoring_results_json,
        resume_data_json=data.resume_data_json,
        job_data_json=data.job_data_json,
        title=(data.title or "").strip() or None,
        status=data.status.value,
    )
    db.add(db_generation)
    db.flush()  # Assign ID without committing
    db.refresh(db_generation)
    return db_generation


def get_generations_for_user(db: Session, user_id: str):
    """Retrieves all generations for a user, newest first."""
    return (
        db.query(models.Generation)
        .filter(models.Generation.user_id == user_id)
        .order_by(models.Generation.created_at.desc())
        .all()
    )


def get_generation(db: Session, generation_id: str, user_id: str):
    return (
        db.query(models.Generation)
        .filter(models.Generation.id == generation_id, models.Generation.user_id == user_id)
        .first()
    )


def update_generation(
    db: Session, generation_id: str, user_id: str, data: schemas.UpdateGenerationData
):
    db_generation = get_generation(db, generation_id=generation_id, user_id=user_id)
    if not db_generation:
        return None

    if data.title is not None:
        db_generation.title = data.title.strip() or None
    if data.status is not None:
        db_generation.status = data.status.value
    db.add(db_generation)
    db.flush()
    db.refresh(db_generation)
    return db_generation


def delete_generation(db: Session, generation_id: str, user_id: str):
    """Delete a generation for a specific user"""
    db_generation = get_generation(db, generation_id=generation_id, user_id=user_id)
    if not db_generation:
        return False  # Not found or doesn't belong to this user

    db.delete(db_generation)
    db.flush()
    return True
