# --- Log and Debug ---
# Short aliases for module names to keep CLI/env concise
LOG_ALIAS_MAP = {
    "cap": "dockerslaves.capacity",
    "gate": "dockerslaves.capacity",
    "drv": "dockerslaves.driver",
    "docker": "dockerslaves.driver.docker",
    "launch": "dockerslaves.driver.launcher",
    "prov": "dockerslaves.provisioner",
    "comp": "dockerslaves.computer",
    "def": "dockerslaves.definitions",
    "matrix": "dockerslaves.matrix",
    "conf": "dockerslaves.config",
    "store": "dockerslaves.store",
    "run": "dockerslaves.runner",
}

# Top-level modules within dockerslaves for auto-prefixing
KNOWN_TOP_MODULES = {
    "capacity",
    "driver",
    "provisioner",
    "computer",
    "definitions",
    "datacls",
    "matrix",
    "config",
    "store",
    "runner",
    "utils",
    "cli",
}

LOG_LEVELS_ENV = "DOCKERSLAVES_LOG_LEVELS"

LOG_COLORS = {
    "DEBUG": "cyan",
    "INFO": "green",
    "WARNING": "yellow",
    "ERROR": "red",
    "CRITICAL": "red,bg_white",
}

# --- Capacity ---
DEFAULT_CONTAINER_CAP = 10
DEFAULT_CONSTRAINT = "default"
# cap applied to every constraint other than the default one
AUXILIARY_CONSTRAINT_CAP = 2
BASE_RETRY_DELAY = 2000
MAX_RETRY_DELAY = BASE_RETRY_DELAY * 30

# --- Images ---
DEFAULT_REMOTING_IMAGE = "jenkinsci/slave"
DEFAULT_SCM_IMAGE = "buildpack-deps:scm"

# --- Remoting agent ---
REMOTING_TMPDIR = "/home/jenkins/.tmp"
REMOTING_AGENT_JAR = "/usr/share/jenkins/slave.jar"
BUILD_CONTAINER_USER = "10000:10000"
DEFAULT_WORKSPACE_ROOT = "/home/jenkins/workspace"

# --- Matrix labels ---
IMAGE_LABEL_PREFIX = "docker:"
CONSTRAINT_LABEL_PREFIX = "constraint:"

# --- Filenames and Paths ---
DEFAULT_STATE_DIR = ".dockerslaves"
CONTEXT_FILENAME = "context.json"

# --- Misc ---
MASK = "********"
DEFAULT_TEARDOWN_WORKERS = 4
