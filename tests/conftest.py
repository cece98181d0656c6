import pytest

from cdk_compose.context import StackContext, StackProps


@pytest.fixture
def ctx():
    return StackContext("test-stack")


@pytest.fixture
def fn_fields():
    return {
        "handler": "index.handler",
        "runtime": "python3.12",
        "code": "lambda/users",
    }


@pytest.fixture
def users_stack(fn_fields):
    """Closed stack from the users-api example."""
    with StackContext("users", StackProps(region="eu-west-1")) as users:
        users.table("users", partition_key=("id", "STRING"))
        users.function("users-api", **fn_fields)
        users.grant(table="users", function="users-api", access="read-write")
    return users
