import logging

from scholarship.errors import ConflictError, NotFoundError, ValidationError

from .forms import ApplicationForm
from .models import Application
from .utils import gen_application_id

logger = logging.getLogger(__name__)

MAX_ID_ATTEMPTS = 5


def submit_application(data: dict) -> Application:
    form = ApplicationForm(data=data)
    if not form.is_valid():
        raise ValidationError(form.error_list(), fields={k: list(v) for k, v in form.errors.items()})
    fields = form.cleaned_data

    if Application.objects.find_duplicate(fields["email"], fields["phone"]):
        raise ConflictError("Application already exists with this email or phone number")

    application_id = gen_application_id()
    attempts = 1
    while Application.objects.filter(application_id=application_id).exists() and attempts < MAX_ID_ATTEMPTS:
        application_id = gen_application_id()
        attempts += 1

    application = Application.objects.create_application(
        application_id=application_id,
        status="pending",
        payment_status="pending",
        **fields,
    )
    logger.info("Application %s submitted", application.application_id)
    return application


def get_application(application_id: str) -> Application:
    application = Application.objects.find_by_key(application_id)
    if application is None:
        raise NotFoundError("Application not found")
    return application
