import json
import logging
import os
from typing import Any, Dict, List, Literal, Optional

from fastapi import Body, Depends, FastAPI, File, Form, Header, Query, Request, UploadFile
from fastapi.middleware.cors import CORSMiddleware
from pydantic import BaseModel, EmailStr, Field
from pymongo.errors import DuplicateKeyError, PyMongoError

import database
from database import (
    count_documents,
    create_document,
    delete_document,
    delete_documents,
    find_document,
    get_document,
    get_documents,
    increment_field,
    to_public,
    update_document,
)
from errors import (
    AuthenticationRequired,
    DuplicateResource,
    NotFound,
    UpstreamStoreError,
    ValidationFailed,
    register_error_handlers,
)
from schemas import (
    DEFAULT_PROFILE,
    MESSAGE_STATUSES,
    Education,
    Experience,
    Message,
    Profile,
    Project,
    Skill,
    User,
    merge_document,
    validate_document,
)
from security import (
    create_access_token,
    get_current_admin,
    get_current_user,
    get_optional_admin,
    hash_password,
    public_user,
    verify_password,
)
from storage import ObjectStore, get_object_store
from uploads import FOLDERS, attach_uploads, detect_kind, discard_files, read_checked, store_file, superseded
from visibility import (
    MESSAGE_SORT,
    PROJECT_SORT,
    SKILL_SORT,
    group_by_category,
    message_filter,
    page_window,
    pagination,
    project_filter,
    skill_filter,
)

logging.basicConfig(
    level=os.getenv("LOG_LEVEL", "INFO").upper(),
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)
logger = logging.getLogger("portfolio")

PROFILE_KEY = "profile"
PUBLIC_MESSAGE_FIELDS = ("name", "email", "subject", "message")

# ============
# Request DTOs
# ============
class RegisterRequest(BaseModel):
    email: EmailStr
    password: str = Field(..., min_length=6)

class LoginRequest(BaseModel):
    email: str
    password: str

class ChangePasswordRequest(BaseModel):
    current_password: str = Field(..., alias="currentPassword")
    new_password: str = Field(..., min_length=6, alias="newPassword")

class StatusUpdate(BaseModel):
    status: Literal["unread", "read", "replied", "archived"]

class NotesUpdate(BaseModel):
    admin_notes: str = Field("", alias="adminNotes")

class BulkDelete(BaseModel):
    ids: List[str] = []

class FileRef(BaseModel):
    url: str

# ==================
# FastAPI app config
# ==================
app = FastAPI(title="Portfolio CMS API")

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

register_error_handlers(app)

# =========
# Utilities
# =========

def ok(data: Any = None, message: Optional[str] = None, **extra) -> Dict[str, Any]:
    body: Dict[str, Any] = {"success": True}
    if message:
        body["message"] = message
    if data is not None:
        body["data"] = data
    body.update(extra)
    return body


def found(doc: Optional[dict], what: str) -> dict:
    if not doc:
        raise NotFound(f"{what} not found")
    return doc


def parse_json_field(name: str, raw: str) -> Any:
    """Multipart requests carry lists and objects as JSON strings."""
    try:
        return json.loads(raw)
    except ValueError:
        raise ValidationFailed(errors=[{"field": name, "message": "Must be valid JSON"}])


def present(fields: Dict[str, Any], json_fields=()) -> Dict[str, Any]:
    data = {k: v for k, v in fields.items() if v is not None}
    for name in json_fields:
        if name in data:
            data[name] = parse_json_field(name, data[name])
    return data

# =======
# Startup
# =======

@app.on_event("startup")
def connect_database():
    try:
        database.ping()
        database.ensure_indexes()
    except (UpstreamStoreError, PyMongoError):
        logger.critical("MongoDB is not reachable; check DATABASE_URL and DATABASE_NAME")
        raise
    logger.info("Connected to MongoDB database %s", database.DATABASE_NAME)
    bootstrap_admin()


def bootstrap_admin():
    email = os.getenv("ADMIN_EMAIL")
    password = os.getenv("ADMIN_PASSWORD")
    if not email or not password:
        return
    email = email.strip().lower()
    existing = find_document("user", {"email": email})
    if existing:
        if existing.get("role") != "admin":
            update_document("user", existing["_id"], {"role": "admin"})
            logger.info("Promoted %s to admin", email)
        return
    create_document("user", User(email=email, password_hash=hash_password(password), role="admin"))
    logger.info("Created admin account %s", email)

# ======
# Routes
# ======
@app.get("/")
def root():
    return {"status": "ok", "service": "portfolio-api"}

@app.get("/api/health")
def health():
    try:
        database.ping()
        db_status = "connected"
    except (UpstreamStoreError, PyMongoError) as e:
        db_status = f"error: {str(e)[:80]}"
    return {"success": True, "status": "OK", "database": db_status, "timestamp": database.now()}

# Auth
def session_for(user: dict) -> dict:
    user = public_user(user)
    return {"token": create_access_token(user["id"], user["role"]), "user": user}

@app.post("/api/auth/register", status_code=201)
def register(data: RegisterRequest):
    email = data.email.lower()
    if find_document("user", {"email": email}):
        raise DuplicateResource("User already exists")
    try:
        user_id = create_document("user", User(email=email, password_hash=hash_password(data.password)))
    except DuplicateKeyError:
        raise DuplicateResource("User already exists")
    return ok(session_for(get_document("user", user_id)), "User registered successfully")

@app.post("/api/auth/login")
def login(data: LoginRequest):
    user = find_document("user", {"email": data.email.strip().lower()})
    if not user or not verify_password(data.password, user.get("passwordHash", "")):
        logger.info("Failed login for %s", data.email)
        raise AuthenticationRequired("Invalid credentials")
    return ok(session_for(user), "Login successful")

@app.get("/api/auth/me")
def me(user: dict = Depends(get_current_user)):
    return ok(user)

@app.put("/api/auth/change-password")
def change_password(data: ChangePasswordRequest, user: dict = Depends(get_current_user)):
    stored = found(get_document("user", user["id"]), "User")
    if not verify_password(data.current_password, stored.get("passwordHash", "")):
        raise ValidationFailed("Current password is incorrect")
    update_document("user", user["id"], {"passwordHash": hash_password(data.new_password)})
    return ok(message="Password changed successfully")

# Projects
def project_form(
    title: Optional[str] = Form(None),
    short_description: Optional[str] = Form(None, alias="shortDescription"),
    full_description: Optional[str] = Form(None, alias="fullDescription"),
    technologies: Optional[str] = Form(None),
    category: Optional[str] = Form(None),
    images: Optional[str] = Form(None),
    live_url: Optional[str] = Form(None, alias="liveUrl"),
    github_url: Optional[str] = Form(None, alias="githubUrl"),
    status: Optional[str] = Form(None),
    featured: Optional[str] = Form(None),
    publish_date: Optional[str] = Form(None, alias="publishDate"),
    completion_date: Optional[str] = Form(None, alias="completionDate"),
    tags: Optional[str] = Form(None),
    order: Optional[str] = Form(None),
) -> Dict[str, Any]:
    data = present(
        {
            "title": title,
            "shortDescription": short_description,
            "fullDescription": full_description,
            "technologies": technologies,
            "category": category,
            "images": images,
            "liveUrl": live_url,
            "githubUrl": github_url,
            "status": status,
            "featured": featured,
            "publishDate": publish_date,
            "completionDate": completion_date,
            "tags": tags,
            "order": order,
        },
        json_fields=("technologies", "tags", "images"),
    )
    if data.get("completionDate") == "":
        data["completionDate"] = None
    return data

@app.get("/api/projects")
def list_projects(
    status: Optional[str] = None,
    featured: Optional[bool] = None,
    category: Optional[str] = None,
    limit: int = 0,
    page: int = 1,
    admin: Optional[dict] = Depends(get_optional_admin),
):
    query = project_filter(admin is not None, status, featured, category)
    skip, size = page_window(page, limit)
    items = [to_public(p) for p in get_documents("project", query, limit=size, sort=PROJECT_SORT, skip=skip)]
    if limit <= 0:
        return ok(items, pagination=None)
    return ok(items, pagination=pagination(page, limit, count_documents("project", query)))

@app.get("/api/projects/{project_id}")
def get_project(project_id: str):
    # Every fetch counts as a view
    project = found(increment_field("project", project_id, "viewCount"), "Project")
    return ok(to_public(project))

@app.post("/api/projects", status_code=201)
def create_project(
    _: dict = Depends(get_current_admin),
    fields: Dict[str, Any] = Depends(project_form),
    thumbnail: Optional[UploadFile] = File(None),
    store: ObjectStore = Depends(get_object_store),
):
    fields.pop("viewCount", None)
    doc = validate_document(Project, fields)
    urls = attach_uploads(store, {"thumbnail": thumbnail})
    doc.update(urls)
    try:
        project_id = create_document("project", doc)
    except PyMongoError:
        discard_files(store, urls.values())
        raise
    return ok(to_public(get_document("project", project_id)), "Project created successfully")

@app.put("/api/projects/{project_id}")
def update_project(
    project_id: str,
    _: dict = Depends(get_current_admin),
    fields: Dict[str, Any] = Depends(project_form),
    thumbnail: Optional[UploadFile] = File(None),
    store: ObjectStore = Depends(get_object_store),
):
    project = found(get_document("project", project_id), "Project")
    doc = merge_document(Project, project, fields)
    doc.pop("viewCount", None)
    urls = attach_uploads(store, {"thumbnail": thumbnail})
    doc.update(urls)
    try:
        updated = update_document("project", project_id, doc)
    except PyMongoError:
        discard_files(store, urls.values())
        raise
    if updated is None:
        discard_files(store, urls.values())
        raise NotFound("Project not found")
    discard_files(store, superseded(project, urls))
    return ok(to_public(updated), "Project updated successfully")

@app.delete("/api/projects/{project_id}")
def delete_project(
    project_id: str,
    _: dict = Depends(get_current_admin),
    store: ObjectStore = Depends(get_object_store),
):
    project = found(delete_document("project", project_id), "Project")
    discard_files(store, [project.get("thumbnailImage")])
    return ok(message="Project deleted successfully")

@app.patch("/api/projects/{project_id}/toggle-featured")
def toggle_featured(project_id: str, _: dict = Depends(get_current_admin)):
    project = found(get_document("project", project_id), "Project")
    project = found(update_document("project", project_id, {"featured": not project.get("featured", False)}), "Project")
    state = "featured" if project["featured"] else "unfeatured"
    return ok(to_public(project), f"Project {state} successfully")

# Skills
@app.get("/api/skills")
def list_skills(category: Optional[str] = None, is_active: Optional[bool] = Query(None, alias="isActive")):
    items = [to_public(s) for s in get_documents("skill", skill_filter(category, is_active), sort=SKILL_SORT)]
    return ok(items, grouped=group_by_category(items))

@app.get("/api/skills/{skill_id}")
def get_skill(skill_id: str):
    return ok(to_public(found(get_document("skill", skill_id), "Skill")))

@app.post("/api/skills", status_code=201)
def create_skill(payload: Dict[str, Any] = Body(...), _: dict = Depends(get_current_admin)):
    doc = validate_document(Skill, payload)
    # The unique index is authoritative; this only gives the friendlier message
    if find_document("skill", {"name": doc["name"]}):
        raise DuplicateResource("Skill already exists")
    try:
        skill_id = create_document("skill", doc)
    except DuplicateKeyError:
        raise DuplicateResource("Skill already exists")
    return ok(to_public(get_document("skill", skill_id)), "Skill created successfully")

@app.put("/api/skills/{skill_id}")
def update_skill(
    skill_id: str,
    payload: Dict[str, Any] = Body(...),
    _: dict = Depends(get_current_admin),
    store: ObjectStore = Depends(get_object_store),
):
    skill = found(get_document("skill", skill_id), "Skill")
    doc = merge_document(Skill, skill, payload)
    if doc["name"] != skill.get("name") and find_document("skill", {"name": doc["name"]}):
        raise DuplicateResource("Skill name already exists")
    try:
        updated = update_document("skill", skill_id, doc)
    except DuplicateKeyError:
        raise DuplicateResource("Skill name already exists")
    updated = found(updated, "Skill")
    discard_files(store, superseded(skill, {"icon": updated.get("icon", "")}))
    return ok(to_public(updated), "Skill updated successfully")

@app.put("/api/skills/{skill_id}/icon")
def upload_skill_icon(
    skill_id: str,
    _: dict = Depends(get_current_admin),
    skill_icon: UploadFile = File(..., alias="skillIcon"),
    store: ObjectStore = Depends(get_object_store),
):
    skill = found(get_document("skill", skill_id), "Skill")
    urls = attach_uploads(store, {"skillIcon": skill_icon})
    if not urls:
        raise ValidationFailed("No file uploaded")
    updated = update_document("skill", skill_id, urls)
    if updated is None:
        discard_files(store, urls.values())
        raise NotFound("Skill not found")
    discard_files(store, superseded(skill, urls))
    return ok(to_public(updated), "Skill icon updated successfully")

@app.delete("/api/skills/{skill_id}")
def delete_skill(
    skill_id: str,
    _: dict = Depends(get_current_admin),
    store: ObjectStore = Depends(get_object_store),
):
    skill = found(delete_document("skill", skill_id), "Skill")
    discard_files(store, [skill.get("icon")])
    return ok(message="Skill deleted successfully")

@app.patch("/api/skills/{skill_id}/toggle-active")
def toggle_active(skill_id: str, _: dict = Depends(get_current_admin)):
    skill = found(get_document("skill", skill_id), "Skill")
    skill = found(update_document("skill", skill_id, {"isActive": not skill.get("isActive", True)}), "Skill")
    state = "activated" if skill["isActive"] else "deactivated"
    return ok(to_public(skill), f"Skill {state} successfully")

# Messages
@app.post("/api/messages", status_code=201)
def submit_message(request: Request, payload: Dict[str, Any] = Body(...), user_agent: Optional[str] = Header(None)):
    fields = {k: payload[k] for k in PUBLIC_MESSAGE_FIELDS if k in payload}
    fields["ipAddress"] = request.client.host if request.client else None
    fields["userAgent"] = user_agent
    message_id = create_document("message", validate_document(Message, fields))
    logger.info("Contact message %s received", message_id)
    return ok({"id": message_id}, "Message sent successfully! We will get back to you soon.")

@app.get("/api/messages")
def list_messages(
    status: Optional[str] = None,
    is_starred: Optional[bool] = Query(None, alias="isStarred"),
    page: int = 1,
    limit: int = 20,
    _: dict = Depends(get_current_admin),
):
    limit = limit if limit > 0 else 20
    query = message_filter(status, is_starred)
    skip, size = page_window(page, limit)
    items = get_documents("message", query, limit=size, sort=MESSAGE_SORT, skip=skip)
    stats = {"total": count_documents("message")}
    for state in MESSAGE_STATUSES:
        stats[state] = count_documents("message", {"status": state})
    stats["starred"] = count_documents("message", {"isStarred": True})
    return ok(
        [to_public(m) for m in items],
        stats=stats,
        pagination=pagination(page, limit, count_documents("message", query)),
    )

@app.get("/api/messages/{message_id}")
def get_message(message_id: str, _: dict = Depends(get_current_admin)):
    message = found(get_document("message", message_id), "Message")
    # First admin read flips unread -> read; the match keeps it to one flip
    marked = update_document("message", message_id, {"status": "read"}, match={"status": "unread"})
    return ok(to_public(marked or message))

@app.patch("/api/messages/{message_id}/status")
def update_message_status(message_id: str, data: StatusUpdate, _: dict = Depends(get_current_admin)):
    found(get_document("message", message_id), "Message")
    message = found(update_document("message", message_id, {"status": data.status}), "Message")
    return ok(to_public(message), "Status updated successfully")

@app.patch("/api/messages/{message_id}/star")
def toggle_star(message_id: str, _: dict = Depends(get_current_admin)):
    message = found(get_document("message", message_id), "Message")
    message = found(update_document("message", message_id, {"isStarred": not message.get("isStarred", False)}), "Message")
    state = "starred" if message["isStarred"] else "unstarred"
    return ok(to_public(message), f"Message {state} successfully")

@app.put("/api/messages/{message_id}/notes")
def update_notes(message_id: str, data: NotesUpdate, _: dict = Depends(get_current_admin)):
    found(get_document("message", message_id), "Message")
    message = found(update_document("message", message_id, {"adminNotes": data.admin_notes.strip()}), "Message")
    return ok(to_public(message), "Notes updated successfully")

@app.delete("/api/messages/{message_id}")
def delete_message(message_id: str, _: dict = Depends(get_current_admin)):
    found(delete_document("message", message_id), "Message")
    return ok(message="Message deleted successfully")

@app.post("/api/messages/bulk/delete")
def bulk_delete_messages(data: BulkDelete, _: dict = Depends(get_current_admin)):
    if not data.ids:
        raise ValidationFailed("Invalid message IDs")
    deleted = delete_documents("message", data.ids)
    return ok({"deleted": deleted}, f"{deleted} message(s) deleted successfully")

# Profile
def load_profile(create: bool = False) -> Optional[dict]:
    """The single profile document; optionally created with placeholders."""
    profile = get_document("profile", PROFILE_KEY)
    if profile is None and create:
        profile = update_document("profile", PROFILE_KEY, validate_document(Profile, DEFAULT_PROFILE), upsert=True)
        logger.info("Created default profile")
    return profile


def profile_form(
    full_name: Optional[str] = Form(None, alias="fullName"),
    title: Optional[str] = Form(None),
    email: Optional[str] = Form(None),
    phone: Optional[str] = Form(None),
    location: Optional[str] = Form(None),
    bio: Optional[str] = Form(None),
    about: Optional[str] = Form(None),
    social_links: Optional[str] = Form(None, alias="socialLinks"),
    experience: Optional[str] = Form(None),
    education: Optional[str] = Form(None),
    seo_title: Optional[str] = Form(None, alias="seoTitle"),
    seo_description: Optional[str] = Form(None, alias="seoDescription"),
    seo_keywords: Optional[str] = Form(None, alias="seoKeywords"),
    is_active: Optional[str] = Form(None, alias="isActive"),
) -> Dict[str, Any]:
    return present(
        {
            "fullName": full_name,
            "title": title,
            "email": email,
            "phone": phone,
            "location": location,
            "bio": bio,
            "about": about,
            "socialLinks": social_links,
            "experience": experience,
            "education": education,
            "seoTitle": seo_title,
            "seoDescription": seo_description,
            "seoKeywords": seo_keywords,
            "isActive": is_active,
        },
        json_fields=("socialLinks", "experience", "education", "seoKeywords"),
    )

@app.get("/api/profile")
def get_profile():
    return ok(to_public(load_profile(create=True)))

@app.put("/api/profile")
def update_profile(
    _: dict = Depends(get_current_admin),
    fields: Dict[str, Any] = Depends(profile_form),
    profile_image: Optional[UploadFile] = File(None, alias="profileImage"),
    cover_image: Optional[UploadFile] = File(None, alias="coverImage"),
    resume: Optional[UploadFile] = File(None),
    store: ObjectStore = Depends(get_object_store),
):
    profile = load_profile() or validate_document(Profile, DEFAULT_PROFILE)
    doc = merge_document(Profile, profile, fields)
    urls = attach_uploads(store, {"profileImage": profile_image, "coverImage": cover_image, "resume": resume})
    doc.update(urls)
    try:
        updated = update_document("profile", PROFILE_KEY, doc, upsert=True)
    except PyMongoError:
        discard_files(store, urls.values())
        raise
    discard_files(store, superseded(profile, urls))
    return ok(to_public(updated), "Profile updated successfully")


def add_entry(section: str, schema, label: str, payload: Dict[str, Any]) -> Dict[str, Any]:
    profile = found(load_profile(), "Profile")
    entry = validate_document(schema, {k: v for k, v in payload.items() if k != "id"})
    updated = update_document("profile", PROFILE_KEY, {section: profile.get(section, []) + [entry]})
    return ok(to_public(updated), f"{label} added successfully")


def update_entry(section: str, schema, label: str, entry_id: str, payload: Dict[str, Any]) -> Dict[str, Any]:
    profile = found(load_profile(), "Profile")
    entries = list(profile.get(section, []))
    index = next((i for i, e in enumerate(entries) if e.get("id") == entry_id), None)
    if index is None:
        raise NotFound(f"{label} not found")
    changes = {k: v for k, v in payload.items() if k != "id"}
    entries[index] = merge_document(schema, entries[index], changes)
    updated = update_document("profile", PROFILE_KEY, {section: entries})
    return ok(to_public(updated), f"{label} updated successfully")


def delete_entry(section: str, label: str, entry_id: str) -> Dict[str, Any]:
    profile = found(load_profile(), "Profile")
    entries = profile.get(section, [])
    remaining = [e for e in entries if e.get("id") != entry_id]
    if len(remaining) == len(entries):
        raise NotFound(f"{label} not found")
    updated = update_document("profile", PROFILE_KEY, {section: remaining})
    return ok(to_public(updated), f"{label} deleted successfully")

@app.post("/api/profile/experience", status_code=201)
def add_experience(payload: Dict[str, Any] = Body(...), _: dict = Depends(get_current_admin)):
    return add_entry("experience", Experience, "Experience", payload)

@app.put("/api/profile/experience/{entry_id}")
def update_experience(entry_id: str, payload: Dict[str, Any] = Body(...), _: dict = Depends(get_current_admin)):
    return update_entry("experience", Experience, "Experience", entry_id, payload)

@app.delete("/api/profile/experience/{entry_id}")
def delete_experience(entry_id: str, _: dict = Depends(get_current_admin)):
    return delete_entry("experience", "Experience", entry_id)

@app.post("/api/profile/education", status_code=201)
def add_education(payload: Dict[str, Any] = Body(...), _: dict = Depends(get_current_admin)):
    return add_entry("education", Education, "Education", payload)

@app.put("/api/profile/education/{entry_id}")
def update_education(entry_id: str, payload: Dict[str, Any] = Body(...), _: dict = Depends(get_current_admin)):
    return update_entry("education", Education, "Education", entry_id, payload)

@app.delete("/api/profile/education/{entry_id}")
def delete_education(entry_id: str, _: dict = Depends(get_current_admin)):
    return delete_entry("education", "Education", entry_id)

# Standalone uploads (gallery images and other assets referenced by url)
@app.post("/api/uploads", status_code=201)
def upload_asset(
    _: dict = Depends(get_current_admin),
    file: UploadFile = File(...),
    folder: Optional[str] = Form(None),
    store: ObjectStore = Depends(get_object_store),
):
    kind = detect_kind(file.filename, file.content_type)
    data = read_checked(file, kind)
    url = store_file(store, file, data, folder if folder in FOLDERS else kind.folder)
    return ok({"url": url, "key": store.key_for(url)}, "File uploaded successfully")

@app.delete("/api/uploads")
def delete_asset(
    ref: FileRef,
    _: dict = Depends(get_current_admin),
    store: ObjectStore = Depends(get_object_store),
):
    if not store.owns(ref.url):
        raise NotFound("File not found")
    store.delete(ref.url)
    return ok(message="File deleted successfully")


if __name__ == "__main__":
    import uvicorn
    port = int(os.getenv("PORT", 8000))
    uvicorn.run(app, host="0.0.0.0", port=port)
