import uuid

import pytest

from researchhub import models
from researchhub.models import PermissionLevel
from researchhub.services.documents import can_view, has_permission


def _document(owner, *, is_public=False, grants=None):
    doc = models.Document(
        id=uuid.uuid4(),
        uploaded_by=owner,
        title="ACL document",
        file_name="f.txt",
        original_name="f.txt",
        file_path="/tmp/f.txt",
        file_size=1,
        mime_type="text/plain",
        is_public=is_public,
    )
    for user_id, level in (grants or {}).items():
        doc.allowed_users[user_id] = models.DocumentPermission(user_id=user_id, permission=level)
    return doc


@pytest.mark.parametrize("requested", list(PermissionLevel))
@pytest.mark.parametrize("is_public", [True, False])
def test_owner_always_passes(requested, is_public):
    owner = uuid.uuid4()
    assert has_permission(_document(owner, is_public=is_public), owner, requested)


@pytest.mark.parametrize("is_public", [True, False])
def test_stranger_view_matches_public_flag(is_public):
    doc = _document(uuid.uuid4(), is_public=is_public)
    assert has_permission(doc, uuid.uuid4(), PermissionLevel.VIEW) is is_public
    # public only opens view
    assert not has_permission(doc, uuid.uuid4(), PermissionLevel.DOWNLOAD)


def test_edit_grant_covers_lower_levels_only():
    grantee = uuid.uuid4()
    doc = _document(uuid.uuid4(), grants={grantee: PermissionLevel.EDIT})
    assert has_permission(doc, grantee, PermissionLevel.VIEW)
    assert has_permission(doc, grantee, PermissionLevel.COMMENT)
    assert has_permission(doc, grantee, PermissionLevel.EDIT)
    assert not has_permission(doc, grantee, PermissionLevel.DOWNLOAD)


def test_download_grant_is_the_top_level():
    grantee = uuid.uuid4()
    doc = _document(uuid.uuid4(), grants={grantee: PermissionLevel.DOWNLOAD})
    assert all(has_permission(doc, grantee, level) for level in PermissionLevel)


def test_requested_level_accepts_plain_strings():
    grantee = uuid.uuid4()
    doc = _document(uuid.uuid4(), grants={grantee: PermissionLevel.COMMENT})
    assert has_permission(doc, grantee, "comment")
    assert not has_permission(doc, grantee, "edit")


def test_anonymous_caller_only_sees_public():
    assert has_permission(_document(uuid.uuid4(), is_public=True), None, PermissionLevel.VIEW)
    assert not has_permission(_document(uuid.uuid4()), None, PermissionLevel.VIEW)


@pytest.mark.parametrize("level", list(PermissionLevel))
def test_any_grant_lets_a_non_member_view(level):
    project = models.Project(id=uuid.uuid4(), title="Private", created_by=uuid.uuid4(), is_public=False)
    grantee = uuid.uuid4()
    doc = _document(project.created_by, grants={grantee: level})
    assert can_view(doc, project, grantee)
    assert not can_view(doc, project, uuid.uuid4())
