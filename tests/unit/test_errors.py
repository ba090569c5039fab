from flowplane.errors import (
    ExpressionSyntaxError,
    SchemaValidationError,
    StepExecutionError,
    WorkflowTimeoutError,
    describe_error,
)


def test_describe_error_prefixes_class_name():
    assert describe_error(ValueError("bad")) == "ValueError: bad"
    assert describe_error(KeyError()) == "KeyError"


def test_step_execution_error_message_carries_cause():
    exc = StepExecutionError("build", 2, RuntimeError("oom"))
    assert str(exc) == "step 'build' failed on attempt 2: RuntimeError: oom"
    assert exc.retryable is True


def test_builtin_compatibility():
    assert isinstance(WorkflowTimeoutError(100), TimeoutError)
    assert isinstance(ExpressionSyntaxError("x"), ValueError)
    assert str(WorkflowTimeoutError(100, "s")) == "workflow exceeded timeout of 100ms while running step 's'"


def test_schema_error_collects_all_errors():
    exc = SchemaValidationError("steps[0].tool", "missing")
    assert exc.errors == [("steps[0].tool", "missing")]
    assert str(exc) == "steps[0].tool: missing"
