"""API route registration.

Order matters: the first registered route that matches wins.
"""

from . import handlers as h
from .guards import GUARDS
from .routing import RouteTable


def build_routes() -> RouteTable:
    routes = RouteTable()

    # public
    routes.get("/api/health", h.health)
    routes.post("/api/auth/register", h.register)
    routes.post("/api/auth/login", h.login)
    routes.post("/api/auth/refresh", h.refresh)
    routes.get("/api/courses", h.list_courses)
    routes.get("/api/courses/{slug}", h.show_course)
    routes.get("/api/subscription-plans", h.subscription_plans)

    with routes.group(guards=[GUARDS["auth"]]):
        routes.get("/api/auth/me", h.me)
        routes.post("/api/auth/logout", h.logout)
        routes.post("/api/auth/change-password", h.change_password)

        routes.get("/api/enrollments", h.list_enrollments)
        routes.post("/api/courses/{id}/enroll", h.enroll)
        routes.get("/api/courses/{id}/progress", h.course_progress)

        routes.get("/api/lessons/{id}", h.show_lesson)
        routes.post("/api/lessons/{id}/complete", h.complete_lesson)
        routes.post("/api/lessons/{id}/progress", h.lesson_progress)

        routes.get("/api/quizzes/{id}", h.show_quiz)
        routes.post("/api/quizzes/{id}/submit", h.submit_quiz)

        routes.get("/api/certificates", h.list_certificates)
        routes.get("/api/subscriptions/active", h.active_subscription)

        routes.get("/api/leaderboard", h.leaderboard)
        routes.get("/api/points-history", h.points_history)
        routes.get("/api/badges", h.badges)
        routes.get("/api/achievements", h.achievements)

        routes.post("/api/ai/chat", h.ai_chat)
        routes.get("/api/ai/history", h.ai_history)

    # subscribed also authenticates
    with routes.group(guards=[GUARDS["subscribed"]]):
        routes.get("/api/goals", h.list_goals)
        routes.post("/api/goals", h.create_goal)
        routes.get("/api/goals/{id}", h.show_goal)
        routes.put("/api/goals/{id}", h.update_goal)
        routes.delete("/api/goals/{id}", h.delete_goal)
        routes.post("/api/goals/{id}/checkin", h.goal_checkin)

        routes.post("/api/goals/{goalId}/milestones", h.create_milestone)
        routes.put("/api/goals/{goalId}/milestones/reorder", h.reorder_milestones)
        routes.put("/api/milestones/{id}", h.update_milestone)
        routes.delete("/api/milestones/{id}", h.delete_milestone)
        routes.post("/api/milestones/{id}/complete", h.complete_milestone)

        routes.get("/api/accountability/partner", h.accountability_partner)
        routes.get("/api/accountability/conversations", h.accountability_conversations)
        routes.get("/api/accountability/messages/{conversationId}", h.accountability_messages)
        routes.post("/api/accountability/messages", h.send_message)

    with routes.group("/api/admin", guards=[GUARDS["admin"]]):
        routes.get("/dashboard", h.admin_dashboard)

    return routes
