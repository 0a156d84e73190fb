# main.py
import logging
import os
import shutil
import uuid
from typing import Optional

from fastapi import FastAPI, File, Form, UploadFile
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import FileResponse, JSONResponse

from data_alchemist.backend import DataManager
from data_alchemist.config import get_settings
from data_alchemist.models import ENTITY_FIELDS, DataAlchemistError, IngestError, Rule, RuleNotFoundError

settings = get_settings()
logging.basicConfig(level=settings.log_level, format="%(asctime)s %(levelname)s %(name)s: %(message)s")
logger = logging.getLogger("data_alchemist.api")

app = FastAPI(title="Data Alchemist")

# Enable CORS for frontend communication
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Global DataManager instance to persist data across requests
global_data_manager: Optional[DataManager] = None


def get_data_manager() -> DataManager:
    global global_data_manager
    if global_data_manager is None:
        global_data_manager = DataManager(settings)
    return global_data_manager


def error_response(status_code: int, message: str) -> JSONResponse:
    return JSONResponse(status_code=status_code, content={"status": "error", "message": message})


def no_data_response() -> JSONResponse:
    return error_response(400, "No data loaded. Please upload files first.")


def handle_exception(e: Exception, where: str) -> JSONResponse:
    if isinstance(e, RuleNotFoundError):
        return error_response(404, str(e))
    if isinstance(e, (IngestError, ValueError, IndexError, KeyError, TypeError)):
        return error_response(400, str(e))
    logger.exception("Error in %s endpoint", where)
    return error_response(500, str(e))


def check_entity(entity: str):
    if entity not in ENTITY_FIELDS:
        raise ValueError(f"Unknown entity type: {entity}. Use one of {', '.join(ENTITY_FIELDS)}")


def save_upload_file(upload_file: UploadFile) -> str:
    os.makedirs(settings.upload_dir, exist_ok=True)
    file_id = str(uuid.uuid4())
    file_path = os.path.join(settings.upload_dir, f"{file_id}_{os.path.basename(upload_file.filename or 'upload')}")
    with open(file_path, "wb") as buffer:
        shutil.copyfileobj(upload_file.file, buffer)
    return file_path


def data_payload(dm: DataManager) -> dict:
    result = dm.validate_all()
    return {
        "status": "success",
        "validation": result.to_dict(),
        "data": {entity: dm.rows(entity) for entity in ENTITY_FIELDS},
        "summary": {
            **{f"total_{entity}": count for entity, count in dm.counts().items()},
            "error_count": len(result.errors),
            "warning_count": len(result.warnings),
        },
    }


# Endpoint to accept files from frontend
@app.post("/upload")
async def upload_files(
    clients: UploadFile = File(...),
    workers: UploadFile = File(...),
    tasks: UploadFile = File(...)
):
    try:
        paths = {
            "clients": save_upload_file(clients),
            "workers": save_upload_file(workers),
            "tasks": save_upload_file(tasks),
        }
        filenames = {"clients": clients.filename, "workers": workers.filename, "tasks": tasks.filename}
        logger.info("Files saved: %s", paths)

        dm = get_data_manager()
        dm.load_files(paths["clients"], paths["workers"], paths["tasks"], filenames)
        if not dm.has_data:
            return error_response(400, "Failed to load data from files")
        return data_payload(dm)
    except Exception as e:
        return handle_exception(e, "upload")


@app.post("/load_sample")
async def load_sample():
    try:
        dm = get_data_manager()
        dm.load_sample_data()
        return data_payload(dm)
    except Exception as e:
        return handle_exception(e, "load_sample")


@app.get("/validate")
async def validate_data():
    try:
        dm = get_data_manager()
        if not dm.has_data:
            return no_data_response()
        return {"status": "success", "validation": dm.validate_all().to_dict()}
    except Exception as e:
        return handle_exception(e, "validate")


# Cell edits re-run validation on the edited data
@app.post("/cells")
async def edit_cell(request: dict):
    try:
        dm = get_data_manager()
        if not dm.has_data:
            return no_data_response()
        entity = request.get("entity", "")
        check_entity(entity)
        result = dm.update_cell(entity, int(request["row"]), request["column"], request.get("value"))
        return {"status": "success", "row": dm.rows(entity)[int(request["row"])], "validation": result.to_dict()}
    except Exception as e:
        return handle_exception(e, "cells")


# AI-suggested fixes for validation findings
@app.post("/suggest_corrections")
async def suggest_corrections(request: dict):
    try:
        dm = get_data_manager()
        if not dm.has_data:
            return no_data_response()
        index = request.get("index")
        suggestions = dm.suggest_corrections(None if index is None else int(index))
        return {"status": "success", "suggestions": suggestions}
    except Exception as e:
        return handle_exception(e, "suggest_corrections")


# Natural language search
@app.post("/nl_search")
async def nl_search(query: str = Form(...), entity: str = Form("clients")):
    try:
        dm = get_data_manager()
        if not dm.has_data:
            return no_data_response()
        check_entity(entity)
        if not query.strip():
            return error_response(400, "Please enter a query")
        return {"status": "success", **dm.natural_language_search(query, entity)}
    except Exception as e:
        return handle_exception(e, "nl_search")


@app.post("/fuzzy_search")
async def fuzzy_search(request: dict):
    try:
        dm = get_data_manager()
        if not dm.has_data:
            return no_data_response()
        entity = request.get("entity", "clients")
        check_entity(entity)
        results = dm.fuzzy_search(entity, request.get("term", ""), request.get("fields"))
        return {"status": "success", "results": results}
    except Exception as e:
        return handle_exception(e, "fuzzy_search")


# Rule set management
@app.get("/rules")
async def list_rules():
    dm = get_data_manager()
    return {"status": "success", "rules": dm.rule_set.to_list()}


@app.post("/rules")
async def create_rule(request: dict):
    try:
        rule = get_data_manager().add_rule(Rule.from_dict(request))
        return {"status": "success", "rule": rule.to_dict()}
    except Exception as e:
        return handle_exception(e, "create_rule")


@app.put("/rules/{rule_id}")
async def update_rule(rule_id: str, request: dict):
    try:
        changes = dict(request)
        if "isActive" in changes:
            changes["is_active"] = changes.pop("isActive")
        rule = get_data_manager().update_rule(rule_id, **changes)
        return {"status": "success", "rule": rule.to_dict()}
    except Exception as e:
        return handle_exception(e, "update_rule")


@app.delete("/rules/{rule_id}")
async def delete_rule(rule_id: str):
    try:
        rule = get_data_manager().remove_rule(rule_id)
        return {"status": "success", "rule": rule.to_dict()}
    except Exception as e:
        return handle_exception(e, "delete_rule")


# AI Rule Generation from Natural Language
@app.post("/ai_generate_rule")
async def ai_generate_rule(request: dict):
    try:
        user_input = request.get("input", "")
        if not user_input.strip():
            return error_response(400, "No input provided")

        dm = get_data_manager()
        if request.get("add", False):
            rule = dm.add_rule_from_nl(user_input)
        else:
            rule = dm.generate_rule_from_natural_language(user_input)
        if rule is None:
            return error_response(422, "Could not turn the description into a rule. Try a different phrasing.")
        return {"status": "success", "rule": rule.to_dict()}
    except Exception as e:
        return handle_exception(e, "ai_generate_rule")


@app.get("/recommendations")
async def rule_recommendations():
    try:
        dm = get_data_manager()
        if not dm.has_data:
            return no_data_response()
        return {"status": "success", "recommendations": [r.to_dict() for r in dm.get_recommended_rules()]}
    except Exception as e:
        return handle_exception(e, "recommendations")


@app.post("/recommendations/accept")
async def accept_recommendation(request: dict):
    try:
        rule = get_data_manager().accept_recommendation(int(request.get("index", 0)))
        return {"status": "success", "rule": rule.to_dict()}
    except Exception as e:
        return handle_exception(e, "accept_recommendation")


@app.post("/priorities")
async def set_priorities(request: dict):
    try:
        dm = get_data_manager()
        weights = request.get("weights")
        dm.set_priorities(
            None if weights is None else {k: float(v) for k, v in weights.items()},
            method=request.get("method", "sliders"),
            preset=request.get("preset"),
            ranking=request.get("ranking"),
            pairwise={k: float(v) for k, v in (request.get("pairwise") or {}).items()},
        )
        return {"status": "success", "priorities": dm.priorities}
    except Exception as e:
        return handle_exception(e, "priorities")


# Export processed data
@app.post("/export")
async def export_data():
    try:
        dm = get_data_manager()
        if not dm.has_data:
            return no_data_response()
        files = dm.export_all(settings.export_dir)
        return {
            "status": "success",
            "message": f"Data exported successfully to {settings.export_dir}",
            "export_directory": settings.export_dir,
            "files": files,
            "summary": {"total_files": len(files), **dm.counts(), "rules_count": len(dm.rule_set)},
        }
    except Exception as e:
        return handle_exception(e, "export")


# Download individual exported files
@app.get("/download/{filename}")
async def download_file(filename: str):
    file_path = os.path.join(settings.export_dir, os.path.basename(filename))
    if not os.path.exists(file_path):
        return error_response(404, "File not found")
    return FileResponse(path=file_path, media_type="application/octet-stream", filename=filename)


@app.exception_handler(DataAlchemistError)
async def library_error_handler(request, exc: DataAlchemistError):
    return handle_exception(exc, str(request.url.path))
