from django.urls import path
from . import views

app_name = 'users'

urlpatterns = [
    # Authentication
    path('register/', views.register, name='register'),
    path('login/', views.login, name='login'),

    # Own profile
    path('user/', views.get_current_user, name='current-user'),
    path('user/update/', views.update_profile, name='update-profile'),

    # Operator management (cellar managers)
    path('operators/', views.OperatorListView.as_view(), name='operator-list'),
    path('operators/<uuid:pk>/role/', views.change_role, name='operator-role'),
    path('operators/<uuid:pk>/deactivate/', views.deactivate, name='operator-deactivate'),
    path('operators/<uuid:pk>/reactivate/', views.reactivate, name='operator-reactivate'),
]
