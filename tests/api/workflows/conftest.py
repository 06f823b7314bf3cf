from copy import deepcopy

import pytest
from fastapi.testclient import TestClient

from api.main import create_app
from api.workflows.services import WorkflowServices
from workflow_compiler import CompilerContext
from workflow_compiler.tests.fakes import FakeConnectionLister, page_title_tools, page_title_workflow
from tests.api.workflows.shared_data import TEST_USER_ID


@pytest.fixture
def connection_lister() -> FakeConnectionLister:
    return FakeConnectionLister()


@pytest.fixture
def workflow_services(connection_lister) -> WorkflowServices:
    return WorkflowServices(
        tool_executor=page_title_tools(),
        connection_lister=connection_lister,
        compiler_context=CompilerContext(no_auth_toolkits=frozenset({"browser_tool"})),
    )


@pytest.fixture
def client(workflow_services) -> TestClient:
    app = create_app(workflow_services)
    with TestClient(app, headers={"X-User-Id": TEST_USER_ID}) as test_client:
        yield test_client


@pytest.fixture
def workflow_payload() -> dict:
    return deepcopy(page_title_workflow())
