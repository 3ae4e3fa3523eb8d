"""
Example usage of ChangeGuardian.

Protects an edit made by an external tool: snapshot first, validate every
changed file, then keep or roll back.
"""

import subprocess
from pathlib import Path

from change_guardian import ChangeGuardian, load_config
from change_guardian.core.logger import setup_logger

project_root = Path('/path/to/your/project')
changed_files = ['src/app.js', 'src/util.js']

config = load_config(project_root=project_root)
setup_logger(log_file=config.resolve(config.logging.file))

guardian = ChangeGuardian(config)

if not guardian.prepare():
    print("Git not available - running without snapshot protection")

# The external edit (an agent, a code formatter, a codemod...)
subprocess.run(['my-agent', '--fix', *changed_files], cwd=project_root)

if all(guardian.validate(path) for path in changed_files):
    guardian.commit()
    print("Changes accepted")
else:
    guardian.rollback()
    for path in guardian.failed_files:
        result = guardian.last_results.get(path)
        print(f"Rejected {path}: {result.summary() if result else 'could not verify'}")

# Same thing with the context manager: rollback happens automatically
# when any validate() fails or the block raises.
with guardian.session() as g:
    subprocess.run(['my-agent', '--fix', 'src/app.js'], cwd=project_root, check=True)
    g.validate('src/app.js')
