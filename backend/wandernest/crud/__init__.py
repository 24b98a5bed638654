from . import crud_review, crud_student, crud_tourist_request
