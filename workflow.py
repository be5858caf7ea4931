"""
Generation workflow: the step sequence, its artifact cache and the guards
that decide when the user may move between steps.

Every step stores at most one artifact. Clearing or replacing an artifact
clears everything that was derived from it, so no artifact ever outlives
its inputs.
"""
from collections import deque
from typing import Any, Dict, Iterable, List, Optional

import structlog
from pydantic import ValidationError

from exceptions import WorkflowError
from schemas import (
    CoverLetter,
    CreateGenerationData,
    Generation,
    GenerationStatus,
    JobData,
    LetterCustomization,
    ResumeData,
    ScoringResults,
    Step,
    WorkflowState,
)

logger = structlog.get_logger(__name__)

SEQUENCE = (Step.UPLOAD, Step.ANALYZE, Step.GENERATE, Step.SCORING, Step.FINAL)

# Step -> steps whose artifacts are computed from its artifact
DEPENDENTS: Dict[Step, tuple] = {
    Step.UPLOAD: (Step.GENERATE, Step.SCORING),
    Step.ANALYZE: (Step.GENERATE, Step.SCORING),
    Step.GENERATE: (),
    Step.SCORING: (),
}

# Inverse of DEPENDENTS: the artifacts a step consumes
INPUTS: Dict[Step, tuple] = {
    Step.UPLOAD: (),
    Step.ANALYZE: (),
    Step.GENERATE: (Step.UPLOAD, Step.ANALYZE),
    Step.SCORING: (Step.UPLOAD, Step.ANALYZE),
    Step.FINAL: (Step.UPLOAD, Step.ANALYZE, Step.GENERATE, Step.SCORING),
}

UNKNOWN_POSITION = "Unknown position"
UNKNOWN_COMPANY = "Unknown company"


def dependents_of(step: Step) -> List[Step]:
    """All transitive dependents of `step`, breadth first."""
    seen: List[Step] = []
    queue = deque(DEPENDENTS.get(step, ()))
    while queue:
        dependent = queue.popleft()
        if dependent in seen:
            continue
        seen.append(dependent)
        queue.extend(DEPENDENTS.get(dependent, ()))
    return seen


def step_index(step: Step) -> int:
    """Position in SEQUENCE; the dashboard sits before the first step."""
    if step == Step.DASHBOARD:
        return -1
    return SEQUENCE.index(step)


class StepCache:
    """Artifacts keyed by the step that produced them.

    A step counts as completed exactly when it holds an artifact.
    """

    def __init__(self):
        self._artifacts: Dict[Step, Any] = {}

    def get(self, step: Step) -> Any:
        return self._artifacts.get(step)

    def completed(self, step: Step) -> bool:
        return step in self._artifacts

    def set(self, step: Step, artifact: Any) -> List[Step]:
        """Store `artifact` for `step`; `None` clears it.

        Returns the steps whose artifacts were invalidated as a result.
        """
        if step not in DEPENDENTS:
            raise WorkflowError(step.value, f"Step '{step.value}' does not hold an artifact")

        previous = self._artifacts.get(step)
        if artifact is None:
            cleared = [step] if step in self._artifacts else []
            self._artifacts.pop(step, None)
            return cleared + self._invalidate(dependents_of(step))

        cleared = []
        if previous is not None and previous != artifact:
            cleared = self._invalidate(dependents_of(step))
        self._artifacts[step] = artifact
        return cleared

    def _invalidate(self, steps: Iterable[Step]) -> List[Step]:
        cleared = [step for step in steps if step in self._artifacts]
        for step in cleared:
            del self._artifacts[step]
        return cleared

    def clear(self) -> None:
        self._artifacts.clear()


class GenerationWorkflow:
    """Per-user workflow session."""

    def __init__(self, user_id: Optional[str] = None):
        self.user_id = user_id
        self.current_step: Step = Step.DASHBOARD
        self.cache = StepCache()
        self.is_letter_editing = False
        self.has_unsaved_letter_changes = False

    # --- Artifacts ---
    @property
    def resume(self) -> Optional[ResumeData]:
        return self.cache.get(Step.UPLOAD)

    @property
    def job(self) -> Optional[JobData]:
        return self.cache.get(Step.ANALYZE)

    @property
    def letter(self) -> Optional[CoverLetter]:
        return self.cache.get(Step.GENERATE)

    @property
    def scoring(self) -> Optional[ScoringResults]:
        return self.cache.get(Step.SCORING)

    # --- Guards ---
    def completed(self, step: Step) -> bool:
        return self.cache.completed(step)

    def is_unlocked(self, step: Step) -> bool:
        if step == Step.DASHBOARD:
            return True
        return step_index(step) <= step_index(self.current_step) or self.completed(step)

    def unlocked_steps(self) -> List[Step]:
        return [step for step in SEQUENCE if self.is_unlocked(step)]

    def can_proceed(self) -> bool:
        if self.current_step in (Step.DASHBOARD, Step.FINAL):
            return False
        if not self.completed(self.current_step):
            return False
        if self.current_step == Step.GENERATE:
            return not (self.is_letter_editing or self.has_unsaved_letter_changes)
        return True

    # --- Navigation ---
    def go_to_next(self) -> Step:
        if not self.can_proceed():
            if self.current_step == Step.GENERATE and self.completed(Step.GENERATE):
                message = "Save or discard letter edits before continuing"
            else:
                message = f"Step '{self.current_step.value}' is not complete"
            raise WorkflowError(self.current_step.value, message)

        self.current_step = SEQUENCE[step_index(self.current_step) + 1]
        logger.info("Workflow advanced", user_id=self.user_id, step=self.current_step.value)
        return self.current_step

    def go_to(self, step: Step) -> Step:
        if step == Step.DASHBOARD:
            return self.return_to_dashboard()
        if not self.is_unlocked(step):
            raise WorkflowError(step.value, f"Step '{step.value}' is locked")
        self.current_step = step
        logger.info("Workflow moved", user_id=self.user_id, step=step.value)
        return step

    def start_new(self) -> Step:
        self.cache.clear()
        self._reset_letter_editing()
        self.current_step = Step.UPLOAD
        logger.info("Workflow started", user_id=self.user_id)
        return self.current_step

    def restart(self) -> Step:
        if self.current_step != Step.FINAL:
            raise WorkflowError(self.current_step.value, "Only a finished workflow can be restarted")
        return self.start_new()

    def return_to_dashboard(self) -> Step:
        self.current_step = Step.DASHBOARD
        return self.current_step

    # --- Step completion ---
    def _require_inputs(self, step: Step) -> None:
        for required in INPUTS[step]:
            if not self.completed(required):
                raise WorkflowError(step.value, f"Step '{required.value}' must be completed first")

    def require_unchanged(self, step: Step, **expected: Any) -> None:
        """Reject a step result whose inputs were replaced while it was being computed.

        `expected` maps artifact names (`resume`, `job`) to the values the step
        started from.
        """
        changed = [name for name, value in expected.items() if getattr(self, name) != value]
        if changed:
            logger.warning(
                "Discarding result built from replaced inputs",
                user_id=self.user_id,
                step=step.value,
                changed=changed,
            )
            raise WorkflowError(
                step.value,
                f"The {' and '.join(changed)} changed while this step was running. Run it again.",
                details={"changed": changed},
            )

    def _store(self, step: Step, artifact: Any) -> None:
        cleared = self.cache.set(step, artifact)
        if Step.GENERATE in cleared:
            self._reset_letter_editing()
        if cleared:
            logger.info(
                "Workflow artifacts invalidated",
                user_id=self.user_id,
                step=step.value,
                cleared=[s.value for s in cleared],
            )
            # Never leave the user standing past a step that no longer has its output
            first_missing = min(step_index(s) for s in cleared)
            if step_index(self.current_step) > first_missing:
                self.current_step = SEQUENCE[first_missing]

    def complete_upload(self, resume: Optional[ResumeData]) -> None:
        self._store(Step.UPLOAD, resume)

    def complete_analysis(self, job: Optional[JobData]) -> None:
        self._store(Step.ANALYZE, job)

    def complete_letter(self, text: str, customization: Optional[LetterCustomization] = None) -> None:
        self._require_inputs(Step.GENERATE)
        if customization is None:
            customization = self.letter.customization if self.letter else LetterCustomization()
        self._store(Step.GENERATE, CoverLetter(text=text, customization=customization))
        self._reset_letter_editing()

    def set_letter_editing(self, is_editing: bool, has_unsaved_changes: bool) -> None:
        if not self.completed(Step.GENERATE):
            raise WorkflowError(Step.GENERATE.value, "There is no letter to edit")
        self.is_letter_editing = is_editing
        self.has_unsaved_letter_changes = has_unsaved_changes

    def complete_scoring(self, result: ScoringResults) -> None:
        self._require_inputs(Step.SCORING)
        self._store(Step.SCORING, result)

    def _reset_letter_editing(self) -> None:
        self.is_letter_editing = False
        self.has_unsaved_letter_changes = False

    # --- Saved generations ---
    def load_generation(self, generation: Generation) -> None:
        """Populate every artifact from a stored generation and jump to the final view.

        Stored blobs are read back as saved, without re-normalising. A record
        that does not fit the models leaves the workflow untouched.
        """
        try:
            resume = ResumeData.model_validate(generation.resume_data_json)
            job = JobData.model_validate(generation.job_data_json)
            scoring = ScoringResults.model_validate(generation.scoring_results_json)
        except ValidationError as e:
            logger.warning(
                "Stored generation does not fit the workflow",
                user_id=self.user_id,
                generation_id=generation.id,
                errors=e.error_count(),
            )
            raise WorkflowError(
                Step.FINAL.value, f"Generation {generation.id} cannot be opened: its stored data is malformed"
            ) from e

        self.cache.clear()
        self._reset_letter_editing()
        self.cache.set(Step.UPLOAD, resume)
        self.cache.set(Step.ANALYZE, job)
        # Customization is not part of the stored record
        self.cache.set(Step.GENERATE, CoverLetter(text=generation.cover_letter_text))
        self.cache.set(Step.SCORING, scoring)
        self.current_step = Step.FINAL
        logger.info("Generation loaded into workflow", user_id=self.user_id, generation_id=generation.id)

    def to_create_data(self, title: Optional[str] = None) -> CreateGenerationData:
        for step in INPUTS[Step.FINAL]:
            if not self.completed(step):
                raise WorkflowError(step.value, f"Cannot save: step '{step.value}' has no result")

        job_title = self.job.job_title or UNKNOWN_POSITION
        company_name = self.job.company_name or UNKNOWN_COMPANY
        total = self.scoring.scoring_result.total_score
        overall_score = None
        if isinstance(total, (int, float)) and 0 <= total <= 100:
            overall_score = int(round(total))
        else:
            logger.warning("Total score not stored", user_id=self.user_id, total_score=repr(total))

        return CreateGenerationData(
            job_title=job_title,
            company_name=company_name,
            overall_score=overall_score,
            cover_letter_text=self.letter.text,
            scoring_results_json=self.scoring.model_dump(mode="json"),
            resume_data_json=self.resume.model_dump(mode="json"),
            job_data_json=self.job.model_dump(mode="json"),
            title=title or f"{self.job.job_title or 'Position'} at {self.job.company_name or 'the company'}",
            status=GenerationStatus.COMPLETED,
        )

    def snapshot(self) -> WorkflowState:
        return WorkflowState(
            current_step=self.current_step,
            completed={step: self.completed(step) for step in SEQUENCE},
            unlocked_steps=self.unlocked_steps(),
            can_proceed=self.can_proceed(),
            is_letter_editing=self.is_letter_editing,
            has_unsaved_letter_changes=self.has_unsaved_letter_changes,
            resume_data=self.resume,
            job_data=self.job,
            cover_letter=self.letter,
            scoring=self.scoring,
            view=render(self),
        )


def _dump(model) -> Optional[dict]:
    return model.model_dump(mode="json") if model is not None else None


def render(workflow: GenerationWorkflow) -> Dict[str, Any]:
    """Step-specific view payload: what the current step consumes and what it produced."""
    step = workflow.current_step
    if step == Step.DASHBOARD:
        return {"step": step.value}
    if step == Step.UPLOAD:
        return {"step": step.value, "resume_data": _dump(workflow.resume)}
    if step == Step.ANALYZE:
        return {"step": step.value, "job_data": _dump(workflow.job)}
    if step == Step.GENERATE:
        return {
            "step": step.value,
            "resume_data": _dump(workflow.resume),
            "job_data": _dump(workflow.job),
            "cover_letter": _dump(workflow.letter),
            "is_editing": workflow.is_letter_editing,
            "has_unsaved_changes": workflow.has_unsaved_letter_changes,
        }
    if step == Step.SCORING:
        return {
            "step": step.value,
            "resume_data": _dump(workflow.resume),
            "job_data": _dump(workflow.job),
            "scoring": _dump(workflow.scoring),
        }
    if step == Step.FINAL:
        return {
            "step": step.value,
            "resume_data": _dump(workflow.resume),
            "job_data": _dump(workflow.job),
            "cover_letter": _dump(workflow.letter),
            "scoring": _dump(workflow.scoring),
        }
    raise WorkflowError(str(step), f"Unknown step: {step}")
