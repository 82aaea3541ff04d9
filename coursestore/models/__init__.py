from coursestore.models.user import User
from coursestore.models.course import Course
from coursestore.models.user_course import UserCourse
from coursestore.models.order import Order
from coursestore.models.order_event import OrderEvent
from coursestore.models.notifications import Notification

# add ALL models here
