"""
Owned portfolio resources.

All eight portfolio sections behave the same way: a record belongs to one
user, only that user may change or remove it, some fields are required, some
arrive as comma-separated lists, and some are media files kept in object
storage. `ResourceSpec` describes one section, `OwnedResource` implements the
create/read/update/delete sequence once, and `build_router` exposes it:

    POST   /{path}/{user_id}          create for user_id
    GET    /{path}/byuserid/{user_id}  list an owner's records (404 when none)
    GET    /{path}/by<name>id/{id}     read one record
    PUT    /{path}/{id}                partial replace
    DELETE /{path}/{id}                delete, releasing hosted media
"""
import logging
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Optional, Tuple, Type

from bson.objectid import ObjectId
from fastapi import APIRouter, Depends, status
from pydantic import BaseModel
from pymongo import DESCENDING, ReturnDocument

import schemas
from auth import get_current_user, require_admin
from context import AppContext, get_context
from database import create_document, get_documents, parse_object_id, to_public, utcnow
from errors import BadRequest, Conflict, Forbidden, NotFound, api_response
from payload import Payload, read_payload, validate_model

logger = logging.getLogger(__name__)

NEWEST_FIRST = (("created_at", DESCENDING),)


def split_list(raw: Any) -> Any:
    """`"React, FastAPI"` or `["React", " FastAPI "]` -> `["React", "FastAPI"]`."""
    if isinstance(raw, str):
        return [item.strip() for item in raw.split(",") if item.strip()]
    if isinstance(raw, list):
        return [item.strip() if isinstance(item, str) else item for item in raw
                if not (isinstance(item, str) and not item.strip())]
    return raw


def parse_skills(raw: Any) -> Any:
    """`"HTML:Beginner, CSS:Advanced"` -> `[{"name": "HTML", "level": "Beginner"}, ...]`."""
    if isinstance(raw, str):
        raw = [chunk for chunk in raw.split(",") if chunk.strip()]
    if not isinstance(raw, list):
        return raw
    skills = []
    for item in raw:
        if isinstance(item, str):
            name, _, level = item.partition(":")
            item = {"name": name.strip(), "level": level.strip()}
        skills.append(item)
    return skills


def normalize_slug(raw: Any) -> Any:
    return raw.strip().lower() if isinstance(raw, str) else raw


def _is_blank(value: Any) -> bool:
    return value is None or value == "" or value == []


def _release_all(context: AppContext, urls: List[str]) -> None:
    """Drop media uploaded for a write that did not go through."""
    for url in urls:
        try:
            context.media.release(url)
        except Exception:
            logger.exception("Could not release orphaned media %s", url)


@dataclass(frozen=True)
class ResourceSpec:
    name: str  # response key for one record
    plural: str  # response key for a list
    label: str
    path: str
    collection: str
    schema: Type[BaseModel]
    required: Tuple[str, ...]
    list_fields: Tuple[str, ...] = ()
    media_fields: Tuple[str, ...] = ()
    parsers: Dict[str, Callable[[Any], Any]] = field(default_factory=dict)
    sort: Tuple[Tuple[str, int], ...] = NEWEST_FIRST
    one_per_owner: bool = False
    unique_fields: Tuple[str, ...] = ()
    lookup_fields: Tuple[str, ...] = ()
    # Testimonials are written by visitors about the owner
    owner_only_create: bool = True
    admin_only: bool = True

    @property
    def id_segment(self) -> str:
        return "by" + self.name.replace("_", "") + "id"

    @property
    def editable_fields(self) -> List[str]:
        return [f for f in self.schema.model_fields if f not in self.media_fields]


class OwnedResource:
    def __init__(self, spec: ResourceSpec):
        self.spec = spec

    def _collection(self, context: AppContext):
        return context.db[self.spec.collection]

    # ----------------
    # Payload handling
    # ----------------
    def _clean(self, payload: Payload) -> Dict[str, Any]:
        """Supplied editable fields only; blanks fall back to the schema default."""
        spec = self.spec
        supplied: Dict[str, Any] = {}
        for name in spec.editable_fields:
            if name not in payload.fields:
                continue
            raw = payload.fields[name]
            if name in spec.parsers:
                value = spec.parsers[name](raw)
            elif name in spec.list_fields:
                value = split_list(raw)
            elif isinstance(raw, str):
                value = raw.strip()
            else:
                value = raw
            if _is_blank(value) and name not in spec.required:
                value = spec.schema.model_fields[name].get_default(call_default_factory=True)
            supplied[name] = value
        return supplied

    def _require(self, data: Dict[str, Any]) -> None:
        missing = [name for name in self.spec.required if _is_blank(data.get(name))]
        if missing:
            raise BadRequest("Missing required fields: " + ", ".join(missing), errors=missing)

    def _check_unique(self, context: AppContext, owner: ObjectId, doc: Dict[str, Any],
                      exclude_id: Optional[ObjectId] = None) -> None:
        spec = self.spec
        base = {"_id": {"$ne": exclude_id}} if exclude_id is not None else {}
        if spec.one_per_owner and self._collection(context).find_one({**base, "user_id": owner}):
            raise Conflict(f"{spec.label} already exists for this user")
        for name in spec.unique_fields:
            if self._collection(context).find_one({**base, name: doc[name]}):
                raise Conflict(f"{spec.label} with this {name} already exists")

    def _load(self, context: AppContext, record_id: str) -> dict:
        oid = parse_object_id(record_id, f"{self.spec.name}Id")
        record = self._collection(context).find_one({"_id": oid})
        if record is None:
            raise NotFound(f"{self.spec.label} not found")
        return record

    def _assert_owner(self, actor: dict, record: dict, action: str) -> None:
        if record.get("user_id") != actor["_id"]:
            raise Forbidden(f"You are not authorized to {action} this {self.spec.label.lower()}")

    # ----------
    # Operations
    # ----------
    def create(self, context: AppContext, owner_id: str, actor: dict, payload: Payload) -> dict:
        spec = self.spec
        owner = parse_object_id(owner_id, "userId")
        if spec.owner_only_create and actor["_id"] != owner:
            raise Forbidden(f"You are not authorized to create this {spec.label.lower()}")
        if context.db["user"].find_one({"_id": owner}, {"_id": 1}) is None:
            raise NotFound("User not found")

        data = self._clean(payload)
        self._require(data)
        doc = validate_model(spec.schema, data).model_dump()
        self._check_unique(context, owner, doc)

        uploaded = []
        try:
            for media in spec.media_fields:
                upload = payload.file(media)
                if upload is not None:
                    doc[media] = context.media.upload(upload)
                    uploaded.append(doc[media])

            doc["user_id"] = owner
            created = create_document(context.db, spec.collection, doc)
        except Exception:
            _release_all(context, uploaded)
            raise
        logger.info("Created %s %s for user %s", spec.name, created["_id"], owner)
        return to_public(created)

    def list_by_owner(self, context: AppContext, owner_id: str) -> List[dict]:
        owner = parse_object_id(owner_id, "userId")
        records = get_documents(context.db, self.spec.collection, {"user_id": owner},
                                sort=self.spec.sort)
        if not records:
            raise NotFound(f"No {self.spec.plural.replace('_', ' ')} found for this user")
        return [to_public(r) for r in records]

    def get(self, context: AppContext, record_id: str) -> dict:
        return to_public(self._load(context, record_id))

    def find_by(self, context: AppContext, field_name: str, value: str) -> dict:
        normalize = self.spec.parsers.get(field_name)
        value = normalize(value) if normalize else value.strip()
        record = self._collection(context).find_one({field_name: value})
        if record is None:
            raise NotFound(f"{self.spec.label} not found")
        return to_public(record)

    def update(self, context: AppContext, record_id: str, actor: dict, payload: Payload) -> dict:
        spec = self.spec
        existing = self._load(context, record_id)
        self._assert_owner(actor, existing, "update")

        current = {k: existing[k] for k in spec.schema.model_fields if k in existing}
        merged = {**current, **self._clean(payload)}
        self._require(merged)
        doc = validate_model(spec.schema, merged).model_dump()
        self._check_unique(context, existing["user_id"], doc, exclude_id=existing["_id"])

        replaced, uploaded = [], []
        try:
            for media in spec.media_fields:
                upload = payload.file(media)
                if upload is not None:
                    replaced.append(existing.get(media))
                    doc[media] = context.media.upload(upload)
                    uploaded.append(doc[media])

            doc["updated_at"] = utcnow()
            updated = self._collection(context).find_one_and_update(
                {"_id": existing["_id"]}, {"$set": doc}, return_document=ReturnDocument.AFTER
            )
        except Exception:
            _release_all(context, uploaded)
            raise
        for old_url in replaced:
            context.media.release(old_url)
        return to_public(updated)

    def delete(self, context: AppContext, record_id: str, actor: dict) -> dict:
        spec = self.spec
        existing = self._load(context, record_id)
        self._assert_owner(actor, existing, "delete")
        self._collection(context).delete_one({"_id": existing["_id"]})
        for media in spec.media_fields:
            context.media.release(existing.get(media))
        logger.info("Deleted %s %s", spec.name, existing["_id"])
        return to_public(existing)


def build_router(resource: OwnedResource) -> APIRouter:
    spec = resource.spec
    router = APIRouter(prefix=f"/{spec.path}", tags=[spec.path])
    guard = require_admin if spec.admin_only else get_current_user

    @router.post("/{user_id}", name=f"create_{spec.name}")
    def create(
        user_id: str,
        actor: dict = Depends(guard),
        payload: Payload = Depends(read_payload),
        context: AppContext = Depends(get_context),
    ):
        record = resource.create(context, user_id, actor, payload)
        return api_response(status.HTTP_201_CREATED, f"{spec.label} created successfully",
                            {spec.name: record})

    @router.get("/byuserid/{user_id}", name=f"list_{spec.plural}")
    def list_by_owner(user_id: str, context: AppContext = Depends(get_context)):
        records = resource.list_by_owner(context, user_id)
        return api_response(status.HTTP_200_OK, f"{spec.label} records retrieved successfully",
                            {spec.plural: records})

    @router.get(f"/{spec.id_segment}/{{record_id}}", name=f"get_{spec.name}")
    def get_one(record_id: str, context: AppContext = Depends(get_context)):
        record = resource.get(context, record_id)
        return api_response(status.HTTP_200_OK, f"{spec.label} retrieved successfully",
                            {spec.name: record})

    for lookup in spec.lookup_fields:
        router.add_api_route(
            f"/by{lookup}/{{value}}",
            _lookup_endpoint(resource, lookup),
            methods=["GET"],
            name=f"get_{spec.name}_by_{lookup}",
        )

    @router.put("/{record_id}", name=f"update_{spec.name}")
    def update(
        record_id: str,
        actor: dict = Depends(guard),
        payload: Payload = Depends(read_payload),
        context: AppContext = Depends(get_context),
    ):
        record = resource.update(context, record_id, actor, payload)
        return api_response(status.HTTP_200_OK, f"{spec.label} updated successfully",
                            {spec.name: record})

    @router.delete("/{record_id}", name=f"delete_{spec.name}")
    def delete(record_id: str, actor: dict = Depends(guard),
               context: AppContext = Depends(get_context)):
        record = resource.delete(context, record_id, actor)
        return api_response(status.HTTP_200_OK, f"{spec.label} deleted successfully",
                            {spec.name: record})

    return router


def _lookup_endpoint(resource: OwnedResource, field_name: str):
    spec = resource.spec

    def lookup(value: str, context: AppContext = Depends(get_context)):
        record = resource.find_by(context, field_name, value)
        return api_response(status.HTTP_200_OK, f"{spec.label} retrieved successfully",
                            {spec.name: record})

    return lookup


# =========
# Resources
# =========

INTRODUCTION = ResourceSpec(
    name="introduction", plural="introductions", label="Introduction",
    path="introductions", collection="introduction", schema=schemas.Introduction,
    required=("greeting", "name", "tagline", "description"),
    media_fields=("profile_image", "resume"),
    one_per_owner=True,
)

EDUCATION = ResourceSpec(
    name="education", plural="educations", label="Education",
    path="educations", collection="education", schema=schemas.Education,
    required=("institution", "degree", "field_of_study", "start_date"),
    media_fields=("logo",),
    sort=(("start_date", DESCENDING),),
)

EXPERIENCE = ResourceSpec(
    name="experience", plural="experiences", label="Experience",
    path="experiences", collection="experience", schema=schemas.Experience,
    required=("title", "company", "start_date"),
    list_fields=("responsibilities", "tech_stack"),
    media_fields=("logo",),
    sort=(("start_date", DESCENDING),),
)

SKILL = ResourceSpec(
    name="skill", plural="skills", label="Skill",
    path="skills", collection="skill", schema=schemas.Skill,
    required=("category", "skills"),
    parsers={"skills": parse_skills},
)

PROJECT = ResourceSpec(
    name="project", plural="projects", label="Project",
    path="projects", collection="project", schema=schemas.Project,
    required=("title", "slug", "description"),
    list_fields=("tech_stack", "tags"),
    media_fields=("image",),
    parsers={"slug": normalize_slug},
    unique_fields=("slug",),
    lookup_fields=("slug",),
)

CERTIFICATION = ResourceSpec(
    name="certification", plural="certifications", label="Certification",
    path="certifications", collection="certification", schema=schemas.Certification,
    required=("title", "provider", "issue_date"),
    media_fields=("badge_image",),
    sort=(("issue_date", DESCENDING),),
)

SOCIAL_LINK = ResourceSpec(
    name="social_link", plural="social_links", label="Social link",
    path="social-links", collection="sociallink", schema=schemas.SocialLink,
    required=("platform", "url"),
)

TESTIMONIAL = ResourceSpec(
    name="testimonial", plural="testimonials", label="Testimonial",
    path="testimonials", collection="testimonial", schema=schemas.Testimonial,
    required=("name", "role", "content"),
    media_fields=("image",),
    owner_only_create=False,
    admin_only=False,
)

RESOURCES = (
    INTRODUCTION,
    EDUCATION,
    EXPERIENCE,
    SKILL,
    PROJECT,
    CERTIFICATION,
    SOCIAL_LINK,
    TESTIMONIAL,
)


def build_routers() -> List[APIRouter]:
    return [build_router(OwnedResource(spec)) for spec in RESOURCES]
