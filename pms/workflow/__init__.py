from flask import Blueprint

workflow_bp = Blueprint("workflow", __name__, url_prefix="/api")
public_bp = Blueprint("public", __name__, url_prefix="/public")

from pms.workflow import routes  # noqa: E402,F401
