from django.urls import path

from core import views_accounts, views_auth, views_health, views_roster

urlpatterns = [
    path("", views_auth.home, name="home"),
    path("login/", views_auth.login, name="login"),
    path("logout/", views_auth.logout, name="logout"),
    path("password-reset/", views_auth.password_reset, name="password-reset"),

    path("classes/<str:class_id>/people/", views_roster.class_people, name="class-people"),
    path("classes/<str:class_id>/people/add/", views_roster.class_people_add, name="class-people-add"),
    path("classes/<str:class_id>/people/bulk/", views_roster.class_people_bulk, name="class-people-bulk"),
    path(
        "classes/<str:class_id>/people/<str:person_id>/remove/",
        views_roster.class_people_remove,
        name="class-people-remove",
    ),

    path("student/classes/<str:class_id>/people/", views_roster.student_class_people, name="student-class-people"),

    path("admin/accounts/<str:kind>/", views_accounts.admin_accounts, name="admin-accounts"),
    path("admin/accounts/<str:kind>/add/", views_accounts.admin_accounts_add, name="admin-accounts-add"),
    path("admin/accounts/<str:kind>/bulk/", views_accounts.admin_accounts_bulk, name="admin-accounts-bulk"),
    path("admin/accounts/<str:kind>/delete/", views_accounts.admin_accounts_delete, name="admin-accounts-delete"),

    path("healthz", views_health.healthz, name="healthz"),
    path("readyz", views_health.readyz, name="readyz"),
]
