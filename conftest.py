# Make `import api_proxy` resolve to this checkout when the package is not
# installed, so the test suite can run straight from a clone.
import os
import sys

SERVICE_ROOT = os.path.dirname(__file__)

if SERVICE_ROOT not in sys.path:
    sys.path.insert(0, SERVICE_ROOT)
