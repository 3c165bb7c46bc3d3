"""Push notifications: messages, pushers, delayed and scheduled delivery, history."""