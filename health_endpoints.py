import azure.functions as func
from function_app import app
from shared.http import RequestContext, run_pipeline


def _health(ctx: RequestContext) -> func.HttpResponse:  # pylint: disable=unused-argument
    return ctx.json({"status": "ok"})


def handle_health(req: func.HttpRequest, settings=None) -> func.HttpResponse:
    return run_pipeline(req, handlers={"GET": _health}, settings=settings, authenticate=False, operation="health")


@app.function_name(name="HealthApi")
@app.route(route="health", methods=["GET", "OPTIONS"], auth_level=func.AuthLevel.ANONYMOUS)
def health_api(req: func.HttpRequest) -> func.HttpResponse:
    return handle_health(req)
