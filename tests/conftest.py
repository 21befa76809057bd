"""Pytest configuration for pl0c tests."""

import pytest
import signal
import sys

from pl0c import Compiler, Interpreter


def pytest_configure(config):
    """Register custom markers."""
    config.addinivalue_line("markers", "timeout(seconds): set custom timeout for test")


def timeout_handler(signum, frame):
    """Handle timeout signal."""
    pytest.fail("Test timed out")


@pytest.fixture(autouse=True)
def test_timeout(request):
    """Apply a timeout to all tests.

    A runaway PL/0C loop shows up as a hung test, so every test gets a
    default 10 second limit; tests can ask for more with:
    @pytest.mark.timeout(30)  # 30 second timeout
    """
    if sys.platform != "win32":
        # Check for custom timeout marker
        marker = request.node.get_closest_marker("timeout")
        timeout_seconds = marker.args[0] if marker else 10

        # Set up timeout handler (Unix only)
        old_handler = signal.signal(signal.SIGALRM, timeout_handler)
        signal.alarm(timeout_seconds)
        yield
        signal.alarm(0)  # Cancel the alarm
        signal.signal(signal.SIGALRM, old_handler)
    else:
        yield


@pytest.fixture
def run_program():
    """Compile and run a program, returning (compiler, interpreter, cycles).

    Fails the test if the program does not compile cleanly.
    """
    def run(source, **interpreter_options):
        compiler = Compiler()
        code, error_count = compiler.compile(source)
        assert error_count == 0, [str(d) for d in compiler.diagnostics]
        interpreter = Interpreter(**interpreter_options)
        cycles = interpreter.run(code)
        return compiler, interpreter, cycles

    return run


@pytest.fixture
def global_value():
    """Read a main-program variable after a run."""
    def read(compiler, interpreter, name):
        return interpreter.stack[compiler.globals[name]]

    return read
