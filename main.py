from collections import OrderedDict
from contextlib import asynccontextmanager
from functools import lru_cache
from typing import List, Optional

from fastapi import Depends, FastAPI, File, Request, UploadFile, status
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse, PlainTextResponse, Response
from sqlalchemy.orm import Session
import structlog

import logic
import schemas
from auth import get_current_user
from collaborators import CollaboratorClient
from database import create_db_and_tables, get_db
from exceptions import (
    AuthorizationError,
    ClientValidationError,
    CollaboratorHTTPError,
    CollaboratorNetworkError,
    CollaboratorTimeoutError,
    GenerationNotFoundError,
    JobMatchError,
    ResponseShapeError,
    WorkflowError,
)
from observability import init_observability
from persistence import GenerationStore
from request_id_middleware import RequestIdMiddleware
from settings import get_settings
from validation import validate_job_url, validate_upload
from workflow import GenerationWorkflow


# Initialise observability before creating app
init_observability()
logger = structlog.get_logger(__name__)

# Create DB tables on startup
create_db_and_tables()


@lru_cache()
def get_collaborator_client() -> CollaboratorClient:
    return CollaboratorClient(get_settings())


@asynccontextmanager
async def lifespan(app: FastAPI):
    yield
    if get_collaborator_client.cache_info().currsize:
        await get_collaborator_client().aclose()


app = FastAPI(
    title="JobMatch AI",
    description="Backend API for the JobMatch AI cover letter and scoring workflow",
    version="0.1.0",
    lifespan=lifespan,
)

# --- CORS Middleware ---
origins = [
    "http://localhost",
    "http://localhost:8000",
    "http://127.0.0.1",
    "http://127.0.0.1:8000",
    get_settings().app_base_url,
]

app.add_middleware(
    CORSMiddleware,
    allow_origins=origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.add_middleware(RequestIdMiddleware)


# --- Error handling --- #
ERROR_STATUS = (
    (ClientValidationError, status.HTTP_400_BAD_REQUEST),
    (WorkflowError, status.HTTP_409_CONFLICT),
    (ResponseShapeError, status.HTTP_502_BAD_GATEWAY),
    (CollaboratorHTTPError, status.HTTP_502_BAD_GATEWAY),
    (CollaboratorTimeoutError, status.HTTP_504_GATEWAY_TIMEOUT),
    (CollaboratorNetworkError, status.HTTP_503_SERVICE_UNAVAILABLE),
    (AuthorizationError, status.HTTP_401_UNAUTHORIZED),
    (GenerationNotFoundError, status.HTTP_404_NOT_FOUND),
)


def status_for(exc: JobMatchError) -> int:
    for exc_type, status_code in ERROR_STATUS:
        if isinstance(exc, exc_type):
            return status_code
    return status.HTTP_500_INTERNAL_SERVER_ERROR


@app.exception_handler(JobMatchError)
async def jobmatch_error_handler(request: Request, exc: JobMatchError):
    status_code = status_for(exc)
    log = logger.warning if status_code < 500 else logger.error
    log(
        "Request failed",
        path=request.url.path,
        status_code=status_code,
        error_code=exc.error_code,
        message=exc.message,
    )
    headers = {"WWW-Authenticate": "Bearer"} if status_code == status.HTTP_401_UNAUTHORIZED else None
    return JSONResponse(
        status_code=status_code,
        content={"error": exc.error_code, "message": exc.message, "details": exc.details},
        headers=headers,
    )


# --- Workflow sessions (Simple In-Memory) --- #
class WorkflowManager:
    def __init__(self, max_sessions: int):
        # One workflow per user_id, least recently used first; lost on restart
        self.workflows: "OrderedDict[str, GenerationWorkflow]" = OrderedDict()
        self.max_sessions = max_sessions

    def get(self, user_id: str) -> GenerationWorkflow:
        workflow = self.workflows.get(user_id)
        if workflow is None:
            workflow = GenerationWorkflow(user_id=user_id)
            self.workflows[user_id] = workflow
            logger.info("Workflow session created", user_id=user_id)
            while len(self.workflows) > self.max_sessions:
                evicted, _ = self.workflows.popitem(last=False)
                logger.info("Workflow session evicted", user_id=evicted)
        else:
            self.workflows.move_to_end(user_id)
        return workflow

    def discard(self, user_id: str) -> None:
        if self.workflows.pop(user_id, None) is not None:
            logger.info("Workflow session closed", user_id=user_id)


manager = WorkflowManager(max_sessions=get_settings().max_workflow_sessions)


def get_workflow(user: schemas.UserIdentity = Depends(get_current_user)) -> GenerationWorkflow:
    return manager.get(user.id)


def get_generation_store(db: Session = Depends(get_db)) -> GenerationStore:
    return GenerationStore(db)


# --- Health --- #
@app.get("/health", tags=["Health"])
def health():
    return {"status": "ok"}


# --- Workflow navigation --- #
@app.get("/workflow", response_model=schemas.WorkflowState, tags=["Workflow"])
def get_workflow_state(workflow: GenerationWorkflow = Depends(get_workflow)):
    return workflow.snapshot()


@app.post("/workflow/start", response_model=schemas.WorkflowState, tags=["Workflow"])
def start_workflow(workflow: GenerationWorkflow = Depends(get_workflow)):
    workflow.start_new()
    return workflow.snapshot()


@app.post("/workflow/dashboard", response_model=schemas.WorkflowState, tags=["Workflow"])
def return_to_dashboard(workflow: GenerationWorkflow = Depends(get_workflow)):
    workflow.return_to_dashboard()
    return workflow.snapshot()


@app.post("/workflow/next", response_model=schemas.WorkflowState, tags=["Workflow"])
def go_to_next_step(workflow: GenerationWorkflow = Depends(get_workflow)):
    workflow.go_to_next()
    return workflow.snapshot()


@app.post("/workflow/goto", response_model=schemas.WorkflowState, tags=["Workflow"])
def go_to_step(body: schemas.StepInput, workflow: GenerationWorkflow = Depends(get_workflow)):
    workflow.go_to(body.step)
    return workflow.snapshot()


@app.post("/workflow/restart", response_model=schemas.WorkflowState, tags=["Workflow"])
def restart_workflow(workflow: GenerationWorkflow = Depends(get_workflow)):
    workflow.restart()
    return workflow.snapshot()


# --- Upload step --- #
@app.post("/workflow/resume", response_model=schemas.WorkflowState, tags=["Workflow"])
async def upload_resume(
    file: UploadFile = File(...),
    workflow: GenerationWorkflow = Depends(get_workflow),
    client: CollaboratorClient = Depends(get_collaborator_client),
    user: schemas.UserIdentity = Depends(get_current_user),
):
    await logic.run_resume_upload(workflow, client, file, user)
    return workflow.snapshot()


@app.put("/workflow/resume", response_model=schemas.WorkflowState, tags=["Workflow"])
def edit_resume(body: schemas.ResumeData, workflow: GenerationWorkflow = Depends(get_workflow)):
    logic.apply_resume_edits(workflow, body)
    return workflow.snapshot()


# --- Analyze step --- #
@app.post("/workflow/job", response_model=schemas.JobAnalysisResult, tags=["Workflow"])
async def analyze_job(
    body: schemas.JobUrlInput,
    workflow: GenerationWorkflow = Depends(get_workflow),
    client: CollaboratorClient = Depends(get_collaborator_client),
    user: schemas.UserIdentity = Depends(get_current_user),
):
    return await logic.run_job_analysis(workflow, client, body.vacancy_url, user)


@app.put("/workflow/job", response_model=schemas.WorkflowState, tags=["Workflow"])
def edit_job(body: schemas.JobData, workflow: GenerationWorkflow = Depends(get_workflow)):
    logic.apply_job_edits(workflow, body)
    return workflow.snapshot()


@app.delete("/workflow/job", response_model=schemas.WorkflowState, tags=["Workflow"])
def reset_job(workflow: GenerationWorkflow = Depends(get_workflow)):
    workflow.complete_analysis(None)
    return workflow.snapshot()


# --- Generate step --- #
@app.post("/workflow/letter", response_model=schemas.WorkflowState, tags=["Workflow"])
async def generate_letter(
    body: schemas.LetterCustomization,
    workflow: GenerationWorkflow = Depends(get_workflow),
    client: CollaboratorClient = Depends(get_collaborator_client),
    user: schemas.UserIdentity = Depends(get_current_user),
):
    await logic.run_letter_generation(workflow, client, body, user)
    return workflow.snapshot()


@app.put("/workflow/letter", response_model=schemas.WorkflowState, tags=["Workflow"])
def save_letter(body: schemas.LetterEditInput, workflow: GenerationWorkflow = Depends(get_workflow)):
    logic.save_letter_edit(workflow, body.text)
    return workflow.snapshot()


@app.put("/workflow/letter/editing", response_model=schemas.WorkflowState, tags=["Workflow"])
def set_letter_editing(
    body: schemas.EditingStateInput, workflow: GenerationWorkflow = Depends(get_workflow)
):
    workflow.set_letter_editing(body.is_editing, body.has_unsaved_changes)
    return workflow.snapshot()


# --- Scoring step --- #
@app.post("/workflow/scoring", response_model=schemas.WorkflowState, tags=["Workflow"])
async def score_match(
    workflow: GenerationWorkflow = Depends(get_workflow),
    client: CollaboratorClient = Depends(get_collaborator_client),
    user: schemas.UserIdentity = Depends(get_current_user),
):
    await logic.run_scoring(workflow, client, user)
    return workflow.snapshot()


@app.get("/workflow/scoring/text", response_class=PlainTextResponse, tags=["Workflow"])
def get_scoring_text(workflow: GenerationWorkflow = Depends(get_workflow)):
    if workflow.scoring is None:
        raise WorkflowError("scoring", "No scoring result yet")
    return logic.format_scoring_text(workflow.scoring)


# --- Final step --- #
@app.post("/workflow/save", response_model=schemas.SaveGenerationResponse, tags=["Workflow"])
async def save_workflow(
    body: Optional[schemas.SaveWorkflowInput] = None,
    workflow: GenerationWorkflow = Depends(get_workflow),
    store: GenerationStore = Depends(get_generation_store),
    user: schemas.UserIdentity = Depends(get_current_user),
):
    title = body.title if body else None
    saved = await logic.save_workflow(workflow, store, user, title=title)
    # Back on the dashboard with nothing left to keep
    manager.discard(user.id)
    return saved


@app.post("/workflow/open/{generation_id}", response_model=schemas.WorkflowState, tags=["Workflow"])
def open_generation(
    generation_id: str,
    workflow: GenerationWorkflow = Depends(get_workflow),
    store: GenerationStore = Depends(get_generation_store),
    user: schemas.UserIdentity = Depends(get_current_user),
):
    logic.open_generation(workflow, store, generation_id, user)
    return workflow.snapshot()


# --- Stateless checks --- #
@app.post("/resume/validate", tags=["Validation"])
def validate_resume_file(body: schemas.UploadValidationInput):
    validate_upload(body.file_name, body.file_size, body.content_type)
    return {"valid": True}


@app.post("/jobs/validate-url", response_model=schemas.JobUrlValidation, tags=["Validation"])
def validate_vacancy_url(body: schemas.JobUrlInput):
    return validate_job_url(body.vacancy_url)


# --- Saved generations --- #
@app.post(
    "/generations",
    response_model=schemas.SaveGenerationResponse,
    status_code=status.HTTP_201_CREATED,
    tags=["Generations"],
)
async def create_generation(
    body: schemas.CreateGenerationData,
    store: GenerationStore = Depends(get_generation_store),
    user: schemas.UserIdentity = Depends(get_current_user),
):
    return await logic.save_generation(store, body, user)


@app.get("/generations", response_model=List[schemas.GenerationSummary], tags=["Generations"])
def list_generations(
    q: Optional[str] = None,
    sort_by: str = "date",
    store: GenerationStore = Depends(get_generation_store),
    user: schemas.UserIdentity = Depends(get_current_user),
):
    return logic.filter_and_sort_generations(store.list(user), query=q, sort_by=sort_by)


@app.get("/generations/{generation_id}", response_model=schemas.Generation, tags=["Generations"])
def get_generation(
    generation_id: str,
    store: GenerationStore = Depends(get_generation_store),
    user: schemas.UserIdentity = Depends(get_current_user),
):
    return store.get(generation_id, user)


@app.patch("/generations/{generation_id}", response_model=schemas.Generation, tags=["Generations"])
def update_generation(
    generation_id: str,
    body: schemas.UpdateGenerationData,
    store: GenerationStore = Depends(get_generation_store),
    user: schemas.UserIdentity = Depends(get_current_user),
):
    return store.update(generation_id, body, user)


@app.delete(
    "/generations/{generation_id}",
    status_code=status.HTTP_204_NO_CONTENT,
    tags=["Generations"],
)
def delete_generation(
    generation_id: str,
    store: GenerationStore = Depends(get_generation_store),
    user: schemas.UserIdentity = Depends(get_current_user),
):
    store.delete(generation_id, user)
    return Response(status_code=status.HTTP_204_NO_CONTENT)
