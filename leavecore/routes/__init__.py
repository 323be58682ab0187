# LeaveCore - Routes
