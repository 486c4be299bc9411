"""Family Garden - GEDCOM import backend.

FastAPI server for the family tree import wizard: validates and parses GEDCOM
uploads, flags likely duplicates against the user's existing tree, turns the
user's decisions into an import plan, and exports trees back to GEDCOM.
"""

import logging
import os
import re
import unicodedata

from dotenv import load_dotenv

# Load environment variables
load_dotenv()

# Configure logging
logging.basicConfig(
    level=os.getenv("FAMILYGARDEN_LOG_LEVEL", "INFO").upper(),
    format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
    datefmt="%Y-%m-%d %H:%M:%S",
)
logger = logging.getLogger("familygarden")

from fastapi import FastAPI, HTTPException, UploadFile, File
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import PlainTextResponse
from pydantic import Field

from gedcom_models import (
    CamelModel,
    DuplicateCheckResult,
    DuplicateMatch,
    DuplicateResolution,
    ExistingPerson,
    ImportPlan,
    ParsedFamily,
    ParsedIndividual,
    ParseResult,
    TreeExport,
)
from gedcom_parser import parse_gedcom, is_valid_gedcom_file
from duplicate_detection import (
    DEFAULT_THRESHOLD,
    UnresolvedDuplicateError,
    apply_resolutions,
    detect_duplicates,
)
from gedcom_exporter import DEFAULT_FILENAME, export_to_gedcom


VERSION = "1.0.0"

DUPLICATE_THRESHOLD = int(os.getenv("FAMILYGARDEN_DUPLICATE_THRESHOLD", str(DEFAULT_THRESHOLD)))
MAX_UPLOAD_BYTES = int(os.getenv("FAMILYGARDEN_MAX_UPLOAD_BYTES", str(10 * 1024 * 1024)))
CORS_ORIGINS = [
    origin.strip()
    for origin in os.getenv(
        "FAMILYGARDEN_CORS_ORIGINS",
        "http://localhost:5173,http://localhost:3000,http://127.0.0.1:5173",
    ).split(",")
    if origin.strip()
]


# Create FastAPI app
app = FastAPI(
    title="Family Garden GEDCOM",
    description="GEDCOM import, duplicate review and export for Family Garden trees",
    version=VERSION,
)

# Configure CORS for frontend
app.add_middleware(
    CORSMiddleware,
    allow_origins=CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


# Request/Response models
class ValidationResponse(CamelModel):
    valid: bool


class DuplicateCheckRequest(CamelModel):
    """Imported individuals to compare against the persons already in the tree."""
    individuals: list[ParsedIndividual]
    existing_persons: list[ExistingPerson] = []
    threshold: int | None = Field(default=None, ge=0, le=100)


class ResolveRequest(CamelModel):
    """A duplicate check result plus the user's decision for each duplicate."""
    duplicates: list[DuplicateMatch] = []
    unique_persons: list[ParsedIndividual] = []
    families: list[ParsedFamily] = []
    resolutions: list[DuplicateResolution] = []


# Helpers

async def read_gedcom_upload(file: UploadFile) -> str:
    """Read an uploaded GEDCOM file as text, enforcing name and size limits."""
    logger.info(f"Received GEDCOM file upload: {file.filename}")

    if not file.filename or not file.filename.lower().endswith((".ged", ".gedcom")):
        logger.warning(f"Invalid file type: {file.filename}")
        raise HTTPException(status_code=400, detail="File must be a GEDCOM file (.ged or .gedcom)")

    # At most one byte past the limit
    content = await file.read(MAX_UPLOAD_BYTES + 1)
    logger.debug(f"Read {len(content)} bytes from file")

    if len(content) > MAX_UPLOAD_BYTES:
        logger.warning(f"GEDCOM file too large: {len(content)} bytes")
        raise HTTPException(status_code=413, detail=f"File exceeds {MAX_UPLOAD_BYTES} bytes")

    try:
        return content.decode("utf-8")
    except UnicodeDecodeError:
        logger.info("UTF-8 decode failed, trying latin-1 encoding")
        return content.decode("latin-1")


def export_filename(tree_name: str) -> str:
    # Header values must stay ASCII
    ascii_name = unicodedata.normalize("NFKD", tree_name).encode("ascii", "ignore").decode()
    safe_name = re.sub(r'[\\/:*?"<>|\r\n]+', "_", ascii_name).strip()
    return f"{safe_name}.ged" if safe_name else DEFAULT_FILENAME


# Endpoints

@app.get("/health")
async def health_check():
    """Health check endpoint."""
    logger.debug("Health check requested")
    return {"status": "healthy", "version": VERSION}


@app.post("/gedcom/validate", response_model=ValidationResponse)
async def validate_gedcom(file: UploadFile = File(...)):
    """Check that an upload looks like a GEDCOM file before parsing it."""
    content = await read_gedcom_upload(file)
    valid = is_valid_gedcom_file(content)
    logger.info(f"GEDCOM validity check for {file.filename}: {valid}")
    return ValidationResponse(valid=valid)


@app.post("/gedcom/parse", response_model=ParseResult)
async def upload_gedcom(file: UploadFile = File(...)):
    """Upload and parse a GEDCOM file."""
    content = await read_gedcom_upload(file)

    if not is_valid_gedcom_file(content):
        logger.warning(f"Rejected {file.filename}: no GEDCOM header found")
        raise HTTPException(status_code=400, detail="Ce fichier ne semble pas être un fichier GEDCOM valide.")

    logger.info("Parsing GEDCOM content...")
    result = parse_gedcom(content)

    if result.errors and not result.individuals:
        logger.warning(f"GEDCOM parse of {file.filename} failed: {result.errors}")
        raise HTTPException(status_code=422, detail=result.errors)

    logger.info(
        f"Successfully parsed GEDCOM file with {len(result.individuals)} individuals "
        f"and {len(result.families)} families ({len(result.warnings)} warnings)"
    )
    return result


@app.post("/gedcom/duplicates", response_model=DuplicateCheckResult)
async def check_duplicates(request: DuplicateCheckRequest):
    """Flag imported individuals that probably already exist in the tree."""
    threshold = request.threshold if request.threshold is not None else DUPLICATE_THRESHOLD
    logger.info(
        f"Checking {len(request.individuals)} imported individuals against "
        f"{len(request.existing_persons)} existing persons"
    )
    return detect_duplicates(request.individuals, request.existing_persons, threshold)


@app.post("/gedcom/resolve", response_model=ImportPlan)
async def resolve_duplicates(request: ResolveRequest):
    """Apply the user's create/skip decisions and return what should be committed."""
    check_result = DuplicateCheckResult(
        duplicates=request.duplicates,
        unique_persons=request.unique_persons,
    )
    try:
        return apply_resolutions(check_result, request.families, request.resolutions)
    except UnresolvedDuplicateError as e:
        logger.warning(f"Import plan requested with unresolved duplicates: {e.imported_ids}")
        raise HTTPException(status_code=400, detail=str(e))


@app.post("/gedcom/export", response_class=PlainTextResponse)
async def export_gedcom(data: TreeExport):
    """Export a tree as a downloadable GEDCOM file."""
    logger.info(f"Exporting tree '{data.tree.name}' with {len(data.persons)} persons")
    content = export_to_gedcom(data)
    filename = export_filename(data.tree.name)
    return PlainTextResponse(
        content,
        headers={"Content-Disposition": f'attachment; filename="{filename}"'},
    )


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(app, host="0.0.0.0", port=8000)
