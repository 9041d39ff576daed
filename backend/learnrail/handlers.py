"""HTTP controllers.

Controllers are thin: each one reads input from the `RequestContext`,
delegates to a service and returns a JSON envelope. Path parameters are
passed as keyword arguments (always strings); ids that are not numeric
cannot name an existing row and are answered with 404.
"""

from . import repositories, responses
from .context import RequestContext
from .errors import NotFound
from .gamification import GamificationService
from .models import utcnow
from .schemas import (
    ChangePasswordIn, ChatIn, CheckinIn, GoalCreateIn, GoalUpdateIn, LessonProgressIn, LoginIn,
    MessageIn, MilestoneIn, MilestoneUpdateIn, QuizSubmitIn, RegisterIn, ReorderIn,
)
from .services import (
    AccountabilityService, AdminService, AuthService, CatalogService, EnrollmentService,
    GoalService, LessonService, MilestoneService, QuizService,
)
from .tutor import AiTutorService


def _id(value: str) -> int:
    if not str(value).isdigit():
        raise NotFound("Resource not found")
    return int(value)


def _auth(ctx: RequestContext) -> AuthService:
    return AuthService(ctx.session, ctx.settings, ctx.codec)


# --- health & auth ---------------------------------------------------------

def health(ctx: RequestContext):
    return responses.success({"status": "ok", "timestamp": utcnow()})


def register(ctx: RequestContext):
    data = _auth(ctx).register(ctx.parse(RegisterIn))
    return responses.created(data, "Registration successful")


def login(ctx: RequestContext):
    data = _auth(ctx).authenticate(ctx.parse(LoginIn))
    return responses.success(data, "Login successful")


def refresh(ctx: RequestContext):
    data = _auth(ctx).refresh(ctx.input("refresh_token"))
    return responses.success(data, "Token refreshed")


def me(ctx: RequestContext):
    return responses.success(_auth(ctx).me(ctx.user_id))


def logout(ctx: RequestContext):
    # tokens are stateless; the client discards them
    return responses.success(None, "Logged out successfully")


def change_password(ctx: RequestContext):
    _auth(ctx).change_password(ctx.user_id, ctx.parse(ChangePasswordIn))
    return responses.success(None, "Password changed successfully")


# --- catalog ---------------------------------------------------------------

def list_courses(ctx: RequestContext):
    page = ctx.pagination()
    featured = str(ctx.query("featured", "")).lower() in ("1", "true")
    total, rows = CatalogService(ctx.session).list_courses(
        ctx.query("search"), ctx.query("level"), featured, page["offset"], page["per_page"])
    return responses.paginated(rows, total, page["page"], page["per_page"])


def show_course(ctx: RequestContext, slug: str):
    return responses.success(CatalogService(ctx.session).course_detail(slug))


def subscription_plans(ctx: RequestContext):
    return responses.success(CatalogService(ctx.session).plans())


def active_subscription(ctx: RequestContext):
    subscription = ctx.subscription or repositories.SubscriptionRepository(ctx.session).active_for_user(ctx.user_id)
    if not subscription:
        return responses.success(None, "No active subscription")
    data = subscription.model_dump()
    plan = repositories.SubscriptionRepository(ctx.session).get_plan(subscription.plan_id)
    data["plan"] = plan.model_dump() if plan else None
    return responses.success(data)


# --- enrollments & lessons -------------------------------------------------

def list_enrollments(ctx: RequestContext):
    page = ctx.pagination()
    total, rows = EnrollmentService(ctx.session, ctx.settings).list_for_user(
        ctx.user_id, ctx.query("status"), page["offset"], page["per_page"])
    return responses.paginated(rows, total, page["page"], page["per_page"])


def enroll(ctx: RequestContext, id: str):
    data = EnrollmentService(ctx.session, ctx.settings).enroll(ctx.user_id, _id(id), ctx.subscription)
    return responses.created(data, "Enrolled successfully")


def course_progress(ctx: RequestContext, id: str):
    return responses.success(EnrollmentService(ctx.session, ctx.settings).progress(ctx.user_id, _id(id)))


def show_lesson(ctx: RequestContext, id: str):
    return responses.success(LessonService(ctx.session, ctx.settings).show(ctx.user_id, _id(id)))


def complete_lesson(ctx: RequestContext, id: str):
    data = LessonService(ctx.session, ctx.settings).complete(ctx.user_id, _id(id))
    if "message" in data:
        return responses.success(None, data["message"])
    return responses.success(data, "Lesson completed")


def lesson_progress(ctx: RequestContext, id: str):
    body = ctx.parse(LessonProgressIn)
    data = LessonService(ctx.session, ctx.settings).record_watch_time(ctx.user_id, _id(id), body.watch_time)
    return responses.success(data, "Progress saved")


def show_quiz(ctx: RequestContext, id: str):
    return responses.success(QuizService(ctx.session, ctx.settings).show(ctx.user_id, _id(id)))


def submit_quiz(ctx: RequestContext, id: str):
    body = ctx.parse(QuizSubmitIn)
    data = QuizService(ctx.session, ctx.settings).submit(ctx.user_id, _id(id), body.answers, body.time_taken)
    return responses.success(data, "Quiz passed!" if data["passed"] else "Quiz completed")


def list_certificates(ctx: RequestContext):
    rows = repositories.CertificateRepository(ctx.session).list_for_user(ctx.user_id)
    data = []
    for cert, course in rows:
        item = cert.model_dump()
        item.update({"course_title": course.title, "course_slug": course.slug})
        data.append(item)
    return responses.success(data)


# --- gamification ----------------------------------------------------------

def leaderboard(ctx: RequestContext):
    try:
        limit = int(ctx.query("limit", 50))
    except (TypeError, ValueError):
        limit = 50
    limit = min(ctx.settings.MAX_PAGE_SIZE, max(1, limit))
    return responses.success(GamificationService(ctx.session).leaderboard(limit, ctx.user_id))


def points_history(ctx: RequestContext):
    page = ctx.pagination()
    total, rows = GamificationService(ctx.session).history(ctx.user_id, page["offset"], page["per_page"])
    return responses.paginated([r.model_dump() for r in rows], total, page["page"], page["per_page"])


def badges(ctx: RequestContext):
    return responses.success(GamificationService(ctx.session).badges(ctx.user_id))


def achievements(ctx: RequestContext):
    return responses.success(GamificationService(ctx.session).achievements(ctx.user_id))


# --- AI tutor --------------------------------------------------------------

def ai_chat(ctx: RequestContext):
    return responses.success(AiTutorService(ctx.session, ctx.settings).chat(ctx.user_id, ctx.parse(ChatIn)))


def ai_history(ctx: RequestContext):
    service = AiTutorService(ctx.session, ctx.settings)
    session_id = ctx.query("session_id")
    if session_id:
        return responses.success(service.session_history(ctx.user_id, session_id))
    page = ctx.pagination()
    total, rows = service.sessions(ctx.user_id, page["offset"], page["per_page"])
    return responses.paginated(rows, total, page["page"], page["per_page"])


# --- goals & milestones ----------------------------------------------------

def list_goals(ctx: RequestContext):
    page = ctx.pagination()
    total, rows = GoalService(ctx.session, ctx.settings).list_for_user(
        ctx.user_id, ctx.query("status"), page["offset"], page["per_page"])
    return responses.paginated(rows, total, page["page"], page["per_page"])


def create_goal(ctx: RequestContext):
    data = GoalService(ctx.session, ctx.settings).create(ctx.user_id, ctx.parse(GoalCreateIn))
    return responses.created(data, "Goal created successfully")


def show_goal(ctx: RequestContext, id: str):
    return responses.success(GoalService(ctx.session, ctx.settings).show(ctx.user_id, _id(id)))


def update_goal(ctx: RequestContext, id: str):
    data = GoalService(ctx.session, ctx.settings).update(ctx.user_id, _id(id), ctx.parse(GoalUpdateIn))
    return responses.success(data, "Goal updated successfully")


def delete_goal(ctx: RequestContext, id: str):
    GoalService(ctx.session, ctx.settings).delete(ctx.user_id, _id(id))
    return responses.success(None, "Goal deleted successfully")


def goal_checkin(ctx: RequestContext, id: str):
    GoalService(ctx.session, ctx.settings).checkin(ctx.user_id, _id(id), ctx.parse(CheckinIn))
    return responses.success(None, "Check-in recorded successfully")


def create_milestone(ctx: RequestContext, goalId: str):
    data = MilestoneService(ctx.session, ctx.settings).create(ctx.user_id, _id(goalId), ctx.parse(MilestoneIn))
    return responses.created(data, "Milestone created successfully")


def reorder_milestones(ctx: RequestContext, goalId: str):
    body = ctx.parse(ReorderIn)
    MilestoneService(ctx.session, ctx.settings).reorder(ctx.user_id, _id(goalId), body.order)
    return responses.success(None, "Milestones reordered successfully")


def update_milestone(ctx: RequestContext, id: str):
    data = MilestoneService(ctx.session, ctx.settings).update(ctx.user_id, _id(id), ctx.parse(MilestoneUpdateIn))
    return responses.success(data, "Milestone updated successfully")


def delete_milestone(ctx: RequestContext, id: str):
    progress = MilestoneService(ctx.session, ctx.settings).delete(ctx.user_id, _id(id))
    return responses.success({"goal_progress": progress}, "Milestone deleted successfully")


def complete_milestone(ctx: RequestContext, id: str):
    data = MilestoneService(ctx.session, ctx.settings).complete(ctx.user_id, _id(id))
    if "message" in data:
        return responses.success(None, data["message"])
    return responses.success(data, "Milestone completed!")


# --- accountability --------------------------------------------------------

def accountability_partner(ctx: RequestContext):
    return responses.success(AccountabilityService(ctx.session).partner(ctx.user_id))


def accountability_conversations(ctx: RequestContext):
    return responses.success(AccountabilityService(ctx.session).conversations(ctx.user_id))


def accountability_messages(ctx: RequestContext, conversationId: str):
    page = ctx.pagination()
    total, rows = AccountabilityService(ctx.session).messages(
        ctx.user_id, _id(conversationId), page["offset"], page["per_page"])
    return responses.paginated(rows, total, page["page"], page["per_page"])


def send_message(ctx: RequestContext):
    data = AccountabilityService(ctx.session).send(ctx.user_id, ctx.parse(MessageIn))
    return responses.created(data, "Message sent")


# --- admin -----------------------------------------------------------------

def admin_dashboard(ctx: RequestContext):
    return responses.success(AdminService(ctx.session).dashboard())
