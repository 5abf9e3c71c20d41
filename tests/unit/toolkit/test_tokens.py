"""
Unit tests for placeholder substitution.
Covers:
- workspace, extension and interpreter tokens
- unknown tokens left untouched
- missing workspace falls back to the process cwd
"""
import os

from triagecore.toolkit.tokens import EXTENSION_ROOT, WorkspaceContext, replace_tokens


def _ctx(root="/work/repo"):
    return WorkspaceContext(workspace_root=root, extension_root="/opt/ext", interpreter="/usr/bin/python3")


def test_workspace_tokens():
    ctx = _ctx()
    assert replace_tokens("${workspaceRoot}/src", ctx) == "/work/repo/src"
    assert replace_tokens("${workspaceFolder}", ctx) == "/work/repo"


def test_extension_and_interpreter_tokens():
    ctx = _ctx()
    assert replace_tokens("${extensionRoot}/scripts/run.py", ctx) == "/opt/ext/scripts/run.py"
    assert replace_tokens("${node}", ctx) == "/usr/bin/python3"
    assert replace_tokens("${python}", ctx) == "/usr/bin/python3"


def test_every_occurrence_is_replaced():
    ctx = _ctx()
    assert replace_tokens("${workspaceRoot}:${workspaceRoot}", ctx) == "/work/repo:/work/repo"


def test_unknown_tokens_are_left_as_is():
    ctx = _ctx()
    assert replace_tokens("${nope}", ctx) == "${nope}"
    assert replace_tokens("$workspaceRoot", ctx) == "$workspaceRoot"
    assert replace_tokens("${WORKSPACEROOT}", ctx) == "${WORKSPACEROOT}"


def test_empty_values():
    ctx = _ctx()
    assert replace_tokens("", ctx) == ""
    assert replace_tokens(None, ctx) == ""


def test_backslashes_in_replacement_are_literal():
    ctx = _ctx(root="C:\\Users\\dev\\repo")
    assert replace_tokens("${workspaceRoot}\\src", ctx) == "C:\\Users\\dev\\repo\\src"


def test_missing_workspace_uses_process_cwd():
    ctx = WorkspaceContext(workspace_root=None)
    assert replace_tokens("${workspaceRoot}", ctx) == os.getcwd()


def test_extension_root_contains_package():
    assert os.path.isdir(os.path.join(EXTENSION_ROOT, "triagecore", "toolkit"))
