# relayci_workflow.py
# Workflow for relayci itself: lint and type check, build a wheel, test it
from __future__ import annotations
from relayci import wf, job, sh, local, retry, static, dotenv_file

# each job starts from a copy of the directory relayci was launched in
checkout = local(copy_repo=True)

def workflow():
    return wf(
        "relayci",

        # Level 0: static checks run side by side
        [
            job(
                "lint",
                sh("Ruff check", "ruff check src tests"),
                sh("Ruff format check", "ruff format --check src tests"),
                continue_on_error=True,
                executor=checkout,
            ),
            job(
                "type-check",
                sh(
                    "Type check",
                    "python -m mypy src/relayci --ignore-missing-imports || echo 'mypy not available, skipping'",
                ),
                executor=checkout,
            ),
            # Build the wheel; later jobs get it through the "dist" artifact
            job(
                "build",
                sh("Build wheel", "python -m pip wheel --no-deps -w dist .",
                   retry=retry(3, backoff="exponential", min_delay=2, max_delay=30)),
                outputs={"dist": "dist/"},
                executor=checkout,
            ),
        ],

        # Level 1: install the built wheel and run the tests against it
        job(
            "test",
            sh("Install wheel", "python -m pip install dist/*.whl pytest"),
            sh("Run pytest", "python -m pytest -q tests"),
            sh("Report", "echo \"tests failed in $RELAYCI_RUN_ID\"", condition="failure()"),
            inputs=["dist"],
            executor=checkout,
        ),

        # Level 2: runs even when something above failed
        job(
            "summary",
            sh("Summary", "echo \"relayci run $RELAYCI_RUN_ID finished\""),
            condition="always()",
        ),

        env={"PIP_DISABLE_PIP_VERSION_CHECK": "1"},
        providers=[
            static({"PYTHONDONTWRITEBYTECODE": "1"}),
            dotenv_file(".env.ci"),
        ],
    )
