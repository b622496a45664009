"""Fixed resource names and paths shared across tiers."""

JENKINS_IMAGE = "jenkins/jenkins:lts"
JENKINS_HOME = "/var/jenkins_home"
SECRET_FILE = f"{JENKINS_HOME}/secrets/initialAdminPassword"

STATE_DIR_NAME = ".jenkinsdeploy"
SETUP_SENTINEL = f"{JENKINS_HOME}/{STATE_DIR_NAME}/setup-complete"
PERSISTENCE_MARKER = f"{JENKINS_HOME}/{STATE_DIR_NAME}/persistence-marker"

HTTP_PORT = 8080
AGENT_PORT = 50000
LOGIN_PATH = "/login"

DOCKER_SOCKET = "/var/run/docker.sock"

CUSTOM_IMAGE_NAME = "jenkins-custom-complex"
CUSTOM_IMAGE_TAG = "1.0"

ADVANCED_NETWORK = "advanced_jenkins_network"
COMPOSE_FILE_NAME = "docker-compose.yml"

CASC_DEFAULT_USER = "admin"
CASC_DEFAULT_PASSWORD = "admin123"

DEFAULT_CONFIG_FILE = ".jenkinsdeploy.yml"
