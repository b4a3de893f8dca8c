"""
Resource catalog and usage counters.
"""
import threading

import pytest
from sqlalchemy.exc import OperationalError

import config
from app import app
from auth.dependencies import get_storage
from conftest import PDF_BYTES
from core.exceptions import AuthenticationRequired, AuthorizationDenied, TransientBackendFailure, ValidationFailure
from database.models import AppRole, Category, Resource, ViewEvent
from services.catalog_service import CatalogService
from services.category_service import CategoryService
from services.file_service import FileService
from services.usage_service import UsageService


def _stored_files(storage):
    return [p for p in storage.root.rglob("*") if p.is_file()]


def _create_category(client, headers, name):
    response = client.post("/api/categories", headers=headers, json={"name": name})
    assert response.status_code == 201, response.text
    return response.json()["id"]


class TestUpload:

    def test_teacher_uploads_pdf(self, client, storage, make_user, login, upload):
        teacher = make_user(AppRole.TEACHER, full_name="Tess Teacher")
        response = upload(login(teacher))
        assert response.status_code == 201, response.text
        body = response.json()
        assert body["title"] == "Algebra Basics"
        assert body["fileType"] == "pdf"
        assert body["mimeType"] == "application/pdf"
        assert body["fileSize"] == len(PDF_BYTES)
        assert body["categoryId"] is None
        assert body["categoryName"] == "Uncategorized"
        assert body["uploadedBy"] == teacher.id
        assert body["uploaderName"] == "Tess Teacher"
        assert body["viewCount"] == 0
        assert body["downloadCount"] == 0
        assert body["fileUrl"].startswith("http://testserver/api/files/" + teacher.id + "/")
        assert body["fileUrl"].endswith(".pdf")
        assert len(_stored_files(storage)) == 1

    def test_file_kind_follows_mime_type(self, client, make_user, login, upload):
        headers = login(make_user(AppRole.TEACHER))
        video = upload(headers, title="Lecture", data=b"\x00\x00\x00\x18ftypmp42", filename="lecture.mp4",
                       content_type="video/mp4")
        image = upload(headers, title="Diagram", data=b"\x89PNG\r\n", filename="diagram.png",
                       content_type="image/png")
        other = upload(headers, title="Notes", data=b"plain notes", filename="notes.txt",
                       content_type="text/plain")
        assert video.json()["fileType"] == "video"
        assert image.json()["fileType"] == "image"
        assert other.json()["fileType"] == "other"

    def test_upload_into_category(self, client, make_user, login, upload):
        headers = login(make_user(AppRole.TEACHER))
        category_id = _create_category(client, headers, "Mathematics")
        body = upload(headers, categoryId=category_id, description="Linear equations").json()
        assert body["categoryId"] == category_id
        assert body["categoryName"] == "Mathematics"
        assert body["description"] == "Linear equations"

    def test_student_cannot_upload(self, client, storage, make_user, login, upload):
        response = upload(login(make_user(AppRole.STUDENT)))
        assert response.status_code == 403
        assert response.json()["error"] == "authorization_denied"
        assert _stored_files(storage) == []

    def test_anonymous_cannot_upload(self, client, upload):
        assert upload({}).status_code == 401

    def test_title_and_file_required(self, client, make_user, login):
        headers = login(make_user(AppRole.TEACHER))
        no_file = client.post("/api/resources", headers=headers, data={"title": "Algebra"})
        assert no_file.status_code == 400
        no_title = client.post(
            "/api/resources", headers=headers, data={"title": "  "},
            files={"file": ("algebra.pdf", PDF_BYTES, "application/pdf")},
        )
        assert no_title.status_code == 400

    def test_unknown_category_rejected(self, client, storage, make_user, login, upload):
        response = upload(login(make_user(AppRole.TEACHER)), categoryId="no-such-category")
        assert response.status_code == 400
        assert _stored_files(storage) == []

    def test_too_large(self, client, make_user, login, upload, monkeypatch):
        monkeypatch.setattr(config, "MAX_UPLOAD_SIZE_MB", 0)
        response = upload(login(make_user(AppRole.TEACHER)))
        assert response.status_code == 400

    def test_storage_failure_leaves_no_row(self, client, db, make_user, login, upload):
        class UnreachableStorage:
            def exists(self, key):
                return False

            def put(self, key, data, content_type=None):
                raise TransientBackendFailure("File storage is unavailable")

        headers = login(make_user(AppRole.TEACHER))
        app.dependency_overrides[get_storage] = UnreachableStorage
        try:
            response = upload(headers)
        finally:
            app.dependency_overrides.pop(get_storage, None)

        assert response.status_code == 503
        assert response.json()["error"] == "backend_unavailable"
        assert db.query(Resource).count() == 0

    def test_failed_row_commit_removes_object(self, db, storage, make_user, monkeypatch):
        teacher = make_user(AppRole.TEACHER)

        def failing_commit():
            raise OperationalError("INSERT INTO resources", {}, Exception("database is locked"))

        monkeypatch.setattr(db, "commit", failing_commit)
        with pytest.raises(OperationalError):
            CatalogService.create_resource(
                db, storage, teacher.id, title="Algebra Basics", data=PDF_BYTES,
                filename="algebra.pdf", content_type="application/pdf",
            )
        monkeypatch.undo()

        assert _stored_files(storage) == []
        assert db.query(Resource).count() == 0


class TestBrowse:

    def test_anonymous_list_is_rejected(self, client):
        response = client.get("/api/resources")
        assert response.status_code == 401

    def test_newest_first(self, client, make_user, login, upload):
        headers = login(make_user(AppRole.TEACHER))
        for title in ("First", "Second", "Third"):
            upload(headers, title=title)
        body = client.get("/api/resources", headers=login(make_user())).json()
        assert body["total"] == 3
        assert [r["title"] for r in body["data"]] == ["Third", "Second", "First"]

    def test_search_title_and_description(self, client, make_user, login, upload):
        headers = login(make_user(AppRole.TEACHER))
        upload(headers, title="Algebra Basics")
        upload(headers, title="Cell Biology", description="Uses ALGEBRA to model growth")
        upload(headers, title="World War II")

        body = client.get("/api/resources", params={"search": "algebra"}, headers=headers).json()
        assert sorted(r["title"] for r in body["data"]) == ["Algebra Basics", "Cell Biology"]

    def test_search_treats_wildcards_literally(self, client, make_user, login, upload):
        headers = login(make_user(AppRole.TEACHER))
        upload(headers, title="100% Algebra")
        upload(headers, title="Algebra 1000")
        upload(headers, title="snake_case")
        upload(headers, title="snakeXcase")

        percent = client.get("/api/resources", params={"search": "0%"}, headers=headers).json()
        assert [r["title"] for r in percent["data"]] == ["100% Algebra"]
        underscore = client.get("/api/resources", params={"search": "e_c"}, headers=headers).json()
        assert [r["title"] for r in underscore["data"]] == ["snake_case"]

    def test_category_filter(self, client, make_user, login, upload):
        headers = login(make_user(AppRole.TEACHER))
        math_id = _create_category(client, headers, "Mathematics")
        upload(headers, title="Algebra Basics", categoryId=math_id)
        upload(headers, title="Loose Notes")

        def titles(category):
            body = client.get("/api/resources", params={"category": category}, headers=headers).json()
            return sorted(r["title"] for r in body["data"])

        assert titles("Mathematics") == ["Algebra Basics"]
        assert titles("all") == ["Algebra Basics", "Loose Notes"]
        assert titles("Science") == []
        # Resources without a category only show up unfiltered
        assert titles("Uncategorized") == []

    def test_uncategorized_is_not_a_category_name(self, client, make_user, login, upload):
        headers = login(make_user(AppRole.TEACHER))
        response = client.post("/api/categories", headers=headers, json={"name": "uncategorized"})
        assert response.status_code == 400

        math_id = _create_category(client, headers, "Mathematics")
        renamed = client.patch(f"/api/categories/{math_id}", headers=headers, json={"name": "Uncategorized"})
        assert renamed.status_code == 400

    def test_name_taken_between_check_and_commit(self, db, make_user, monkeypatch):
        teacher_id = make_user(AppRole.TEACHER).id
        CategoryService.create_category(db, teacher_id, "Mathematics")
        # Both writers pass the lookup; the unique index decides
        monkeypatch.setattr(CategoryService, "_check_name_free", staticmethod(lambda db, name, exclude_id=None: None))

        with pytest.raises(ValidationFailure):
            CategoryService.create_category(db, teacher_id, "Mathematics")
        science = CategoryService.create_category(db, teacher_id, "Science")
        with pytest.raises(ValidationFailure):
            CategoryService.update_category(db, teacher_id, science.id, name="Mathematics")
        assert db.query(Category).count() == 2

    def test_my_uploads(self, client, make_user, login, upload):
        mine = login(make_user(AppRole.TEACHER))
        theirs = login(make_user(AppRole.TEACHER))
        upload(mine, title="First")
        upload(theirs, title="Not Mine")
        upload(mine, title="Second")

        body = client.get("/api/resources", params={"mine": "true"}, headers=mine).json()
        assert body["total"] == 2
        assert [r["title"] for r in body["data"]] == ["Second", "First"]

        everything = client.get("/api/resources", headers=mine).json()
        assert everything["total"] == 3

    def test_deleted_category_shows_uncategorized(self, client, make_user, login, upload):
        headers = login(make_user(AppRole.TEACHER))
        math_id = _create_category(client, headers, "Mathematics")
        resource_id = upload(headers, categoryId=math_id).json()["id"]

        response = client.delete(f"/api/categories/{math_id}", headers=headers)
        assert response.status_code == 200
        assert response.json()["uncategorizedResources"] == 1

        body = client.get(f"/api/resources/{resource_id}", headers=headers).json()
        assert body["categoryId"] is None
        assert body["categoryName"] == "Uncategorized"

    def test_unknown_resource(self, client, make_user, login):
        response = client.get("/api/resources/missing", headers=login(make_user()))
        assert response.status_code == 404


class TestEditAndDelete:

    def test_owner_edits(self, client, make_user, login, upload):
        headers = login(make_user(AppRole.TEACHER))
        category_id = _create_category(client, headers, "Mathematics")
        resource_id = upload(headers, categoryId=category_id).json()["id"]

        response = client.patch(
            f"/api/resources/{resource_id}", headers=headers,
            json={"title": "Algebra II", "categoryId": None},
        )
        assert response.status_code == 200
        body = response.json()
        assert body["title"] == "Algebra II"
        assert body["categoryName"] == "Uncategorized"

    def test_blank_category_id_clears_category(self, client, make_user, login, upload):
        headers = login(make_user(AppRole.TEACHER))
        category_id = _create_category(client, headers, "Mathematics")
        resource_id = upload(headers, categoryId=category_id).json()["id"]

        response = client.patch(f"/api/resources/{resource_id}", headers=headers, json={"categoryId": ""})
        assert response.status_code == 200
        assert response.json()["categoryId"] is None
        assert response.json()["categoryName"] == "Uncategorized"

    def test_other_teacher_cannot_edit_or_delete(self, client, make_user, login, upload):
        resource_id = upload(login(make_user(AppRole.TEACHER))).json()["id"]
        other = login(make_user(AppRole.TEACHER))
        assert client.patch(f"/api/resources/{resource_id}", headers=other, json={"title": "x"}).status_code == 403
        assert client.delete(f"/api/resources/{resource_id}", headers=other).status_code == 403

    def test_admin_deletes_any(self, client, db, storage, make_user, login, upload):
        resource_id = upload(login(make_user(AppRole.TEACHER))).json()["id"]
        admin = login(make_user(AppRole.ADMIN))
        client.post(f"/api/resources/{resource_id}/view", headers=admin)

        assert client.delete(f"/api/resources/{resource_id}", headers=admin).status_code == 200
        assert client.get(f"/api/resources/{resource_id}", headers=admin).status_code == 404
        assert db.query(ViewEvent).count() == 0
        # Stored object is kept unless purging is enabled
        assert len(_stored_files(storage)) == 1

    def test_delete_purges_object_when_enabled(self, client, storage, make_user, login, upload, monkeypatch):
        monkeypatch.setattr(config, "PURGE_OBJECTS_ON_DELETE", True)
        headers = login(make_user(AppRole.TEACHER))
        resource_id = upload(headers).json()["id"]
        assert client.delete(f"/api/resources/{resource_id}", headers=headers).status_code == 200
        assert _stored_files(storage) == []

    def test_owner_keeps_edit_rights_after_losing_teacher(self, client, db, make_user, login, upload):
        teacher = make_user(AppRole.TEACHER)
        headers = login(teacher)
        resource_id = upload(headers).json()["id"]
        admin = login(make_user(AppRole.ADMIN))
        assert client.delete(f"/api/roles/{teacher.id}/teacher", headers=admin).status_code == 200

        response = client.patch(f"/api/resources/{resource_id}", headers=headers, json={"title": "Renamed"})
        assert response.status_code == 200
        assert upload(headers, title="Another").status_code == 403


class TestUsage:

    def test_view_and_download_counts(self, client, make_user, login, upload):
        resource = upload(login(make_user(AppRole.TEACHER))).json()
        student = login(make_user())

        first = client.post(f"/api/resources/{resource['id']}/view", headers=student)
        second = client.post(f"/api/resources/{resource['id']}/view", headers=student)
        assert first.json()["viewCount"] == 1
        assert second.json()["viewCount"] == 2

        download = client.post(f"/api/resources/{resource['id']}/download", headers=student)
        assert download.status_code == 200
        assert download.json()["fileUrl"] == resource["fileUrl"]

        body = client.get(f"/api/resources/{resource['id']}", headers=student).json()
        assert body["viewCount"] == 2
        assert body["downloadCount"] == 1

    def test_view_of_missing_resource(self, client, db, make_user, login):
        response = client.post("/api/resources/missing/view", headers=login(make_user()))
        assert response.status_code == 404
        assert db.query(ViewEvent).count() == 0

    def test_view_event_names_the_viewer(self, db, make_user, login, upload):
        resource_id = upload(login(make_user(AppRole.TEACHER))).json()["id"]
        student = make_user()
        UsageService.record_view(db, student.id, resource_id)
        event = db.query(ViewEvent).one()
        assert event.user_id == student.id
        assert event.resource_id == resource_id

    def test_anonymous_view_rejected(self, client, make_user, login, upload):
        resource_id = upload(login(make_user(AppRole.TEACHER))).json()["id"]
        assert client.post(f"/api/resources/{resource_id}/view").status_code == 401

    def test_concurrent_views_are_all_counted(self, make_user, login, upload):
        resource_id = upload(login(make_user(AppRole.TEACHER))).json()["id"]
        viewers = [make_user().id for _ in range(4)]
        views_each = 5
        errors = []

        def view(principal_id):
            try:
                for _ in range(views_each):
                    with config.db.get_session() as session:
                        UsageService.record_view(session, principal_id, resource_id)
            except Exception as e:  # collected and asserted below
                errors.append(e)

        threads = [threading.Thread(target=view, args=(v,)) for v in viewers]
        for t in threads:
            t.start()
        for t in threads:
            t.join()

        assert errors == []
        with config.db.get_session() as session:
            assert session.get(Resource, resource_id).view_count == len(viewers) * views_each
            assert session.query(ViewEvent).count() == len(viewers) * views_each

    def test_stale_loaded_row_does_not_lose_views(self, db, make_user, login, upload):
        resource_id = upload(login(make_user(AppRole.TEACHER))).json()["id"]
        student = make_user()
        loaded = CatalogService.get_resource(db, student.id, resource_id)
        assert loaded.view_count == 0

        for _ in range(2):
            with config.db.get_session() as other:
                UsageService.record_view(other, student.id, resource_id)

        assert UsageService.record_view(db, student.id, resource_id) == 3

    def test_download_counts_do_not_need_teacher(self, db, make_user, login, upload):
        resource_id = upload(login(make_user(AppRole.TEACHER))).json()["id"]
        url = UsageService.record_download(db, make_user().id, resource_id)
        assert url.endswith(".pdf")

    def test_download_url_read_before_commit(self, db, make_user, login, upload, monkeypatch):
        resource = upload(login(make_user(AppRole.TEACHER))).json()
        student_id = make_user().id
        real_commit = db.commit

        def commit_then_delete():
            real_commit()
            with config.db.get_session() as other:
                other.query(Resource).filter(Resource.id == resource["id"]).delete()

        monkeypatch.setattr(db, "commit", commit_then_delete)
        assert UsageService.record_download(db, student_id, resource["id"]) == resource["fileUrl"]

    def test_anonymous_download_rejected(self, db, make_user, login, upload):
        resource_id = upload(login(make_user(AppRole.TEACHER))).json()["id"]
        with pytest.raises(AuthenticationRequired):
            UsageService.record_download(db, None, resource_id)


class TestFiles:

    def test_public_url_serves_bytes_without_auth(self, client, make_user, login, upload):
        resource = upload(login(make_user(AppRole.TEACHER))).json()
        response = client.get(resource["fileUrl"])
        assert response.status_code == 200
        assert response.content == PDF_BYTES
        assert response.headers["content-type"] == "application/pdf"

    def test_resource_file_route(self, client, make_user, login, upload):
        resource = upload(login(make_user(AppRole.TEACHER))).json()
        response = client.get(f"/api/resources/{resource['id']}/file", headers=login(make_user()))
        assert response.status_code == 200
        assert response.content == PDF_BYTES

    def test_missing_object(self, client):
        assert client.get("/api/files/nobody/missing.pdf").status_code == 404

    def test_bucket_write_rules(self, client, make_user, login):
        teacher = login(make_user(AppRole.TEACHER))
        student = login(make_user())
        files = {"file": ("notes.txt", b"v1", "text/plain")}

        assert client.post("/api/files/shared/notes.txt", headers=student, files=files).status_code == 403
        assert client.post("/api/files/shared/notes.txt", headers=teacher, files=files).status_code == 201
        assert client.post("/api/files/shared/notes.txt", headers=teacher, files=files).status_code == 400

        # Replacing and removing are open to any signed-in principal
        replaced = client.put(
            "/api/files/shared/notes.txt", headers=student, files={"file": ("notes.txt", b"v2", "text/plain")}
        )
        assert replaced.status_code == 200
        assert client.get("/api/files/shared/notes.txt").content == b"v2"
        assert client.delete("/api/files/shared/notes.txt").status_code == 401
        assert client.delete("/api/files/shared/notes.txt", headers=student).status_code == 200
        assert client.get("/api/files/shared/notes.txt").status_code == 404

    def test_student_cannot_use_bucket_to_skip_catalog_rules(self, db, storage, make_user):
        with pytest.raises(AuthorizationDenied):
            FileService.write(db, storage, make_user().id, "x/notes.txt", b"data")
