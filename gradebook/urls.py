from django.urls import path
from . import views

app_name = 'gradebook'

urlpatterns = [
    # Report cards
    path(
        'api/students/<int:student_id>/terms/<int:term_id>/report/',
        views.get_student_term_report_details,
        name='student_term_report'
    ),

    # Recalculation
    path(
        'api/grading-schemes/<uuid:scheme_id>/recalculate/',
        views.recalculate_all_grades,
        name='recalculate_all_grades'
    ),
    path(
        'api/recalculation-runs/<uuid:run_id>/',
        views.recalculation_run_status,
        name='recalculation_run_status'
    ),
]
